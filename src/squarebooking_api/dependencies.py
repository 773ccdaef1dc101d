"""FastAPI dependency injection providers for the payment services.

Services are lazily instantiated and cached with @lru_cache. Confirmation
settings are not cached: they are read from the option store once per
request and passed into the reconciler.

Service Dependency Graph:
    DynamoDBService (singleton via get_dynamodb_service)
        ├── OptionStore
        │       ├── IdempotencyLedger
        │       └── SuccessNoticeStore
        ├── BookingStore
        │       └── BookingExistenceOracle
        └── UserDirectory, SquareDirectory
                └── BookingMaterializer (+ BookingStore)
    StripeService (singleton via get_stripe_service)

    ConfirmationReconciler uses all of the above.

Testing:
    Use reset_services() to clear cached instances between tests.
"""

from functools import lru_cache

from squarebooking.services.booking_store import BookingStore
from squarebooking.services.confirmation_settings import ConfirmationSettings
from squarebooking.services.directories import SquareDirectory, UserDirectory
from squarebooking.services.dynamodb import get_dynamodb_service
from squarebooking.services.existence_oracle import BookingExistenceOracle
from squarebooking.services.idempotency_ledger import IdempotencyLedger
from squarebooking.services.materializer import BookingMaterializer
from squarebooking.services.option_store import OptionStore
from squarebooking.services.reconciler import ConfirmationReconciler
from squarebooking.services.ssm_service import get_ssm_service
from squarebooking.services.stripe_service import StripeService, get_stripe_service
from squarebooking.services.success_notice import SuccessNoticeStore


@lru_cache
def get_option_store() -> OptionStore:
    return OptionStore(db=get_dynamodb_service())


@lru_cache
def get_idempotency_ledger() -> IdempotencyLedger:
    return IdempotencyLedger(options=get_option_store())


@lru_cache
def get_success_notice_store() -> SuccessNoticeStore:
    return SuccessNoticeStore(options=get_option_store())


@lru_cache
def get_booking_store() -> BookingStore:
    return BookingStore(db=get_dynamodb_service())


@lru_cache
def get_user_directory() -> UserDirectory:
    return UserDirectory(db=get_dynamodb_service())


@lru_cache
def get_square_directory() -> SquareDirectory:
    return SquareDirectory(db=get_dynamodb_service())


@lru_cache
def get_existence_oracle() -> BookingExistenceOracle:
    """Get cached BookingExistenceOracle instance.

    Returns:
        Oracle over the booking store, scan fallback per environment.
    """
    return BookingExistenceOracle(store=get_booking_store())


@lru_cache
def get_booking_materializer() -> BookingMaterializer:
    """Get cached BookingMaterializer instance.

    Returns:
        BookingMaterializer configured with the store and both directories.
    """
    return BookingMaterializer(
        store=get_booking_store(),
        users=get_user_directory(),
        squares=get_square_directory(),
    )


def get_payment_provider() -> StripeService:
    return get_stripe_service()


@lru_cache
def get_reconciler() -> ConfirmationReconciler:
    """Get cached ConfirmationReconciler instance.

    Returns:
        ConfirmationReconciler wired to all collaborators.
    """
    return ConfirmationReconciler(
        stripe=get_stripe_service(),
        ledger=get_idempotency_ledger(),
        oracle=get_existence_oracle(),
        materializer=get_booking_materializer(),
        notices=get_success_notice_store(),
    )


def get_confirmation_settings() -> ConfirmationSettings:
    """Read the channel toggles for this request."""
    return ConfirmationSettings.load(get_option_store())


def reset_services() -> None:
    """Clear all cached service instances.

    Call this in test fixtures to ensure clean state between tests.
    Also resets the DynamoDB, SSM and Stripe singletons.

    Example:
        @pytest.fixture(autouse=True)
        def reset_state():
            yield
            reset_services()
    """
    from squarebooking.services.dynamodb import reset_dynamodb_service

    get_option_store.cache_clear()
    get_idempotency_ledger.cache_clear()
    get_success_notice_store.cache_clear()
    get_booking_store.cache_clear()
    get_user_directory.cache_clear()
    get_square_directory.cache_clear()
    get_existence_oracle.cache_clear()
    get_booking_materializer.cache_clear()
    get_reconciler.cache_clear()

    get_stripe_service.cache_clear()
    get_ssm_service.cache_clear()
    reset_dynamodb_service()
