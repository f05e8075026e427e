"""Invoice domain - monthly student invoicing and tutor payouts"""

from .router import router

__all__ = ["router"]
