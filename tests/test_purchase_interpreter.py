"""
Tests for the purchase interpreter classification rules.
"""

from hypothesis import given
from hypothesis import strategies as st

from playsubs.models.google_play import (
    PaymentState,
    PurchaseState,
    PurchaseType,
    RawOneTimePurchase,
    RawSubscriptionPurchase,
)
from playsubs.services import purchase_interpreter as interpreter
from playsubs.services.purchase_interpreter import DEFAULT_POLICY, GracePeriodPolicy

NOW = 1792281600000
EXPIRY = NOW + 1000


def subscription(**overrides) -> RawSubscriptionPurchase:
    fields = {
        "start_time_millis": NOW - 1000,
        "expiry_time_millis": EXPIRY,
        "auto_renewing": True,
        "payment_state": PaymentState.RECEIVED,
    }
    fields.update(overrides)
    return RawSubscriptionPurchase(**fields)


class TestEntitlement:
    """Active strictly before expiry, and past it only during grace period."""

    def test_active_before_expiry(self):
        assert interpreter.is_entitlement_active(subscription(), EXPIRY - 1)

    def test_inactive_exactly_at_expiry(self):
        purchase = subscription(auto_renewing=False)
        assert not interpreter.is_entitlement_active(purchase, EXPIRY)

    def test_canceled_subscription_active_until_expiry(self):
        purchase = subscription(auto_renewing=False, cancel_reason=0)
        assert interpreter.is_entitlement_active(purchase, EXPIRY - 1)
        assert not interpreter.is_entitlement_active(purchase, EXPIRY + 1)

    def test_active_until_is_expiry(self):
        assert interpreter.active_until(subscription()) == EXPIRY

    def test_active_until_undefined_for_one_time(self):
        one_time = RawOneTimePurchase(purchase_time_millis=NOW, purchase_state=0)
        assert interpreter.active_until(one_time) is None


class TestGracePeriodPaymentStatePolicy:
    """Payment state decides between grace and hold past expiry."""

    policy = GracePeriodPolicy.PAYMENT_STATE

    def test_pending_payment_past_expiry_is_grace(self):
        purchase = subscription(payment_state=PaymentState.PENDING)
        now = EXPIRY + 1

        assert interpreter.is_grace_period(purchase, now, self.policy)
        assert interpreter.is_entitlement_active(purchase, now, self.policy)
        assert not interpreter.is_account_hold(purchase, now, self.policy)

    def test_pending_deferred_past_expiry_is_grace(self):
        purchase = subscription(payment_state=PaymentState.PENDING_DEFERRED)
        assert interpreter.is_grace_period(purchase, EXPIRY + 1, self.policy)

    def test_failed_payment_past_expiry_is_hold(self):
        purchase = subscription(payment_state=PaymentState.FAILED)
        now = EXPIRY + 1

        assert interpreter.is_account_hold(purchase, now, self.policy)
        assert not interpreter.is_entitlement_active(purchase, now, self.policy)
        assert not interpreter.is_grace_period(purchase, now, self.policy)

    def test_pending_before_expiry_is_not_grace(self):
        purchase = subscription(payment_state=PaymentState.PENDING)
        assert not interpreter.is_grace_period(purchase, EXPIRY - 1, self.policy)

    def test_not_auto_renewing_is_neither(self):
        purchase = subscription(auto_renewing=False, payment_state=PaymentState.FAILED)
        assert not interpreter.is_account_hold(purchase, EXPIRY + 1, self.policy)
        assert not interpreter.is_grace_period(purchase, EXPIRY + 1, self.policy)


class TestGracePeriodExpiryExtensionPolicy:
    """Play v3: expiry is extended through grace; unpaid past expiry is hold."""

    policy = GracePeriodPolicy.EXPIRY_EXTENSION

    def test_pending_before_expiry_is_grace(self):
        purchase = subscription(payment_state=PaymentState.PENDING)
        assert interpreter.is_grace_period(purchase, EXPIRY - 1, self.policy)
        assert interpreter.is_entitlement_active(purchase, EXPIRY - 1, self.policy)

    def test_pending_past_expiry_is_hold(self):
        purchase = subscription(payment_state=PaymentState.PENDING)
        now = EXPIRY + 1

        assert interpreter.is_account_hold(purchase, now, self.policy)
        assert not interpreter.is_grace_period(purchase, now, self.policy)
        assert not interpreter.is_entitlement_active(purchase, now, self.policy)


class TestDefaultPolicy:
    """Play v3 never reports a failed payment state; hold is unpaid past expiry."""

    def test_default_is_expiry_extension(self):
        assert DEFAULT_POLICY is GracePeriodPolicy.EXPIRY_EXTENSION

    def test_play_account_hold_is_not_entitled(self):
        # What Play returns for a subscription on hold: auto-renewing, unpaid, expired
        purchase = subscription(payment_state=PaymentState.PENDING)
        now = EXPIRY + 90 * 24 * 60 * 60 * 1000

        assert interpreter.is_account_hold(purchase, now)
        assert not interpreter.is_grace_period(purchase, now)
        assert not interpreter.is_entitlement_active(purchase, now)


class TestFlags:
    def test_free_trial(self):
        assert interpreter.is_free_trial(subscription(payment_state=PaymentState.FREE_TRIAL))
        assert not interpreter.is_free_trial(subscription())

    def test_test_purchase(self):
        assert interpreter.is_test_purchase(subscription(purchase_type=PurchaseType.TEST))
        assert not interpreter.is_test_purchase(subscription(purchase_type=None))
        assert not interpreter.is_test_purchase(subscription(purchase_type=PurchaseType.PROMO))

    def test_will_renew(self):
        assert interpreter.will_renew(subscription())
        assert not interpreter.will_renew(subscription(auto_renewing=False))


class TestMutability:
    def test_replaced_is_terminal(self):
        assert not interpreter.is_subscription_mutable(subscription(), NOW, replaced=True)

    def test_expired_non_renewing_is_immutable(self):
        purchase = subscription(auto_renewing=False)
        assert not interpreter.is_subscription_mutable(purchase, EXPIRY + 1)

    def test_expired_auto_renewing_is_mutable(self):
        assert interpreter.is_subscription_mutable(subscription(), EXPIRY + 1)

    def test_registerable_unless_replaced(self):
        assert interpreter.is_subscription_registerable(False)
        assert not interpreter.is_subscription_registerable(True)

    def test_one_time_registerable_only_when_purchased(self):
        purchased = RawOneTimePurchase(purchase_time_millis=NOW, purchase_state=PurchaseState.PURCHASED)
        canceled = RawOneTimePurchase(purchase_time_millis=NOW, purchase_state=PurchaseState.CANCELED)
        pending = RawOneTimePurchase(purchase_time_millis=NOW, purchase_state=PurchaseState.PENDING)

        assert interpreter.is_one_time_registerable(purchased)
        assert not interpreter.is_one_time_registerable(canceled)
        assert not interpreter.is_one_time_registerable(pending)
        assert interpreter.is_one_time_mutable(pending)
        assert not interpreter.is_one_time_mutable(purchased)


subscriptions = st.builds(
    RawSubscriptionPurchase,
    start_time_millis=st.integers(min_value=0, max_value=NOW),
    expiry_time_millis=st.integers(min_value=0, max_value=NOW * 2),
    auto_renewing=st.booleans(),
    payment_state=st.one_of(st.none(), st.sampled_from(list(PaymentState))),
)
policies = st.sampled_from(list(GracePeriodPolicy))


class TestProperties:
    @given(purchase=subscriptions, now=st.integers(min_value=0, max_value=NOW * 2), policy=policies)
    def test_grace_and_hold_are_exclusive(self, purchase, now, policy):
        assert not (
            interpreter.is_grace_period(purchase, now, policy)
            and interpreter.is_account_hold(purchase, now, policy)
        )

    @given(purchase=subscriptions, now=st.integers(min_value=0, max_value=NOW * 2), policy=policies)
    def test_hold_never_entitles(self, purchase, now, policy):
        if interpreter.is_account_hold(purchase, now, policy):
            assert not interpreter.is_entitlement_active(purchase, now, policy)

    @given(purchase=subscriptions, now=st.integers(min_value=0, max_value=NOW * 2), policy=policies)
    def test_grace_always_entitles(self, purchase, now, policy):
        if interpreter.is_grace_period(purchase, now, policy):
            assert interpreter.is_entitlement_active(purchase, now, policy)

    @given(purchase=subscriptions, now=st.integers(min_value=0, max_value=NOW * 2), policy=policies)
    def test_active_before_expiry_regardless_of_payment(self, purchase, now, policy):
        if now < purchase.expiry_time_millis:
            assert interpreter.is_entitlement_active(purchase, now, policy)
