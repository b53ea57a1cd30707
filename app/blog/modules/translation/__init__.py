"""
Post translation through Azure Translator, cached per (slug, language).
"""
