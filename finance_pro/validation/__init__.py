"""Form validation package."""

from finance_pro.validation.validator import FormValidator

__all__ = ["FormValidator"]
