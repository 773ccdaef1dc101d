"""Payment confirmation services for square bookings."""

from .booking_store import BookingStore
from .confirmation_settings import ConfirmationSettings
from .directories import SquareDirectory, UserDirectory
from .dynamodb import DynamoDBService, get_dynamodb_service, reset_dynamodb_service
from .existence_oracle import BookingExistenceOracle
from .idempotency_ledger import IdempotencyLedger
from .materializer import BookingMaterializer
from .option_store import OptionStore
from .reconciler import ConfirmationReconciler, ReconcileResult
from .ssm_service import SSMService, SSMServiceError, get_ssm_service
from .stripe_service import StripeService, calculate_fees, get_stripe_service
from .success_notice import SuccessNoticeStore

__all__ = [
    "BookingExistenceOracle",
    "BookingMaterializer",
    "BookingStore",
    "ConfirmationReconciler",
    "ConfirmationSettings",
    "DynamoDBService",
    "IdempotencyLedger",
    "OptionStore",
    "ReconcileResult",
    "SquareDirectory",
    "SSMService",
    "SSMServiceError",
    "StripeService",
    "SuccessNoticeStore",
    "UserDirectory",
    "calculate_fees",
    "get_dynamodb_service",
    "get_ssm_service",
    "get_stripe_service",
    "reset_dynamodb_service",
]
