"""Branch naming and checkout comment text.

Pure helpers used by the automator. Branch names are derived from the
issue number and title only, so handling the same issue twice always
proposes the same branch.
"""

from slugify import slugify

BRANCH_NAME_MAX_CHARS = 60
BRANCH_SEPARATOR = "_"

CHECKOUT_COMMENT_HEADER = "Branch has been created for PR! Please check out the branch\n"


def build_branch_name(issue_number: int, title: str) -> str:
    """Build the branch name for an issue.

    The number and lowercased title are slugified with ``_`` as the
    separator, then cut to BRANCH_NAME_MAX_CHARS characters.

    Example:
        >>> build_branch_name(7, "Add dark mode")
        '7_add_dark_mode'
    """
    slug = slugify(f"{issue_number} {title.lower()}", separator=BRANCH_SEPARATOR)
    return slug[:BRANCH_NAME_MAX_CHARS]


def branch_ref(branch_name: str) -> str:
    """Fully qualified ref for a branch name."""
    return f"refs/heads/{branch_name}"


def build_checkout_comment(branch_name: str) -> str:
    """Build the issue comment telling contributors how to check out the branch."""
    checkout = (
        "```\n"
        "git fetch origin\n"
        f'git checkout -b "{branch_name}" "origin/{branch_name}"\n'
        "```"
    )
    return CHECKOUT_COMMENT_HEADER + checkout
