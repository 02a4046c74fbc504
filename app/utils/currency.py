"""Formatting of kobo amounts as naira."""


def format_naira(kobo: int) -> str:
    """Return a string like «₦2,000» (or «₦2,000.50» when there are kobo)."""
    naira, rest = divmod(int(kobo), 100)
    if rest:
        return f"₦{naira:,}.{rest:02d}"
    return f"₦{naira:,}"
