"""Payment confirmation toggles, resolved once per request."""

from pydantic import BaseModel, ConfigDict

from .option_store import OptionStore

USE_WEBHOOK_OPTION = "service.payment.stripe.use_webhook"
USE_SESSION_CHECK_OPTION = "service.payment.stripe.use_session_check"
INCLUDE_FEES_OPTION = "service.payment.stripe.include_fees"


class ConfirmationSettings(BaseModel):
    """Which confirmation channels are active.

    Passed into each reconciler call so a toggle flipped mid-request has no
    effect on a confirmation already in flight.
    """

    model_config = ConfigDict(frozen=True, strict=True)

    webhook_enabled: bool = True
    session_check_enabled: bool = True
    include_fees: bool = False

    @classmethod
    def resolve(
        cls,
        *,
        webhook_enabled: bool,
        session_check_enabled: bool,
        include_fees: bool = False,
    ) -> "ConfirmationSettings":
        """Apply the fallback: with both channels off, session check is on."""
        if not webhook_enabled and not session_check_enabled:
            session_check_enabled = True
        return cls(
            webhook_enabled=webhook_enabled,
            session_check_enabled=session_check_enabled,
            include_fees=include_fees,
        )

    @classmethod
    def load(cls, options: OptionStore) -> "ConfirmationSettings":
        return cls.resolve(
            webhook_enabled=options.get_bool(USE_WEBHOOK_OPTION, True),
            session_check_enabled=options.get_bool(USE_SESSION_CHECK_OPTION, True),
            include_fees=options.get_bool(INCLUDE_FEES_OPTION, False),
        )

    @property
    def mode(self) -> str:
        """Human-readable mode name used in logs."""
        if self.webhook_enabled and self.session_check_enabled:
            return "hybrid"
        if self.webhook_enabled:
            return "webhook_only"
        return "session_check_only"

    @property
    def webhook_only(self) -> bool:
        return self.webhook_enabled and not self.session_check_enabled

    @property
    def hybrid(self) -> bool:
        return self.webhook_enabled and self.session_check_enabled
