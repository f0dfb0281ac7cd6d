"""Helpers for reporting payload sizes without logging payloads."""


def format_size(size_bytes: int) -> str:
    """Format bytes as human-readable string (e.g., "1.5 KB", "2.3 MB")."""
    size = float(size_bytes)
    for unit in ["B", "KB", "MB", "GB"]:
        if size < 1024.0:
            return f"{size:.1f} {unit}"
        size /= 1024.0
    return f"{size:.1f} TB"


def payload_size_fields(body: bytes | str) -> dict[str, str | int]:
    """Log fields describing a raw webhook body by length only."""
    size = len(body)
    return {"payload_size": size, "payload_size_human": format_size(size)}
