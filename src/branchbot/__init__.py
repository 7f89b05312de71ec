"""Label-triggered issue automation for GitHub repositories.

This package implements a single webhook-driven bot that reacts to
``issues.labeled`` events by:
- Linking the issue to a configured project board
- Creating a branch for the issue off a configured base branch
- Commenting on the issue with checkout instructions
"""
