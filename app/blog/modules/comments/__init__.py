"""
Comments module.

- Visitors see only APPROVED comments, rendered as a reply tree
- New comments start PENDING and wait for a moderator
- Moderation and deletion are recorded to the admin log
"""
