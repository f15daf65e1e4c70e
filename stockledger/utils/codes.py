"""Business-code and text helpers shared by the catalog services."""
import time
from typing import Optional


def clean_text(value) -> Optional[str]:
    """Strip text input; blank or 'none' become None."""
    if value is None:
        return None
    text = str(value).strip()
    if not text or text.lower() == 'none':
        return None
    return text


def generate_code(session, tenant_id: int, prefix: str, model) -> str:
    """PREFIX-<6 digits> from the clock, bumped until free for the tenant."""
    seq = int(time.time() * 1000) % 1_000_000
    while True:
        code = f'{prefix}-{seq:06d}'
        taken = session.query(model.id).filter(model.tenant_id == tenant_id, model.code == code).first()
        if not taken:
            return code
        seq = (seq + 1) % 1_000_000
