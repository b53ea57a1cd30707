"""
Posts are MDX files on disk (CONTENT_DIR); there is no posts table.
"""
