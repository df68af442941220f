"""
Hashing Utilities - short deterministic identifiers for page elements.
"""

import hashlib


def short_hash(text: str, length: int = 8) -> str:
    """
    Compute a short, stable hash of a string.

    Args:
        text: Input string
        length: Number of hex characters to keep

    Returns:
        Hash string
    """
    return hashlib.md5(text.encode("utf-8")).hexdigest()[:length]


def element_id(prefix: str, role: str, label: str, input_type: str = "") -> str:
    """
    Build an element identifier from its accessible name, role and input type.

    Two structurally identical controls produce the same identifier.

    Args:
        prefix: "act" for actions, "fld" for fields, "opt" for form options
        role: ARIA role or tag name
        label: Accessible name
        input_type: Input type attribute, if any

    Returns:
        Identifier such as "act_1a2b3c4d"
    """
    return f"{prefix}_{short_hash(f'{prefix}-{role}-{label}-{input_type}')}"
