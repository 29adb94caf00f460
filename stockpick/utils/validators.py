def parse_quantity(text: str, name: str = "quantity") -> int:
    v = int(text.strip())
    if v < 0:
        raise ValueError(f"{name} must be >= 0")
    return v


def require_sku(text: str) -> str:
    sku = (text or "").strip()
    if not sku or sku.startswith("/"):
        raise ValueError("SKU is required")
    return sku
