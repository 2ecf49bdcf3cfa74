def mask_secret(value: str | None, visible: int = 10) -> str:
    """Mask a credential for logs and admin listings."""
    if not value:
        return ""
    if len(value) <= visible:
        return value[:2] + "..."
    return value[:visible] + "..."
