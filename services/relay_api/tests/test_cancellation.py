from relay_api.cancellation import CancelRegistry, CancelToken


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


def test_token_starts_uncancelled():
    assert CancelToken().cancelled is False


def test_cancellation_expires_after_debounce_window():
    clock = FakeClock()
    token = CancelToken(debounce_seconds=1.0, clock=clock)

    token.cancel()
    assert token.cancelled is True
    clock.now += 0.5
    assert token.cancelled is True
    clock.now += 0.5
    assert token.cancelled is False

    # A fresh cancel after expiry starts a new window.
    token.cancel()
    assert token.cancelled is True


def test_reset_clears_pending_cancellation():
    token = CancelToken(debounce_seconds=10)
    token.cancel()
    token.reset()
    assert token.cancelled is False


def test_registry_cancels_registered_token():
    registry = CancelRegistry()
    token = CancelToken(debounce_seconds=10)
    registry.register("req-1", token)

    assert registry.cancel("req-1") is True
    assert token.cancelled is True
    assert registry.cancel("req-2") is False


def test_registry_discard_only_removes_own_token():
    registry = CancelRegistry()
    old, new = CancelToken(), CancelToken()
    registry.register("req-1", old)
    registry.register("req-1", new)

    registry.discard("req-1", old)
    assert len(registry) == 1

    registry.discard("req-1", new)
    assert len(registry) == 0
    assert registry.cancel("req-1") is False


def test_attached_token_keeps_cancellation_past_window():
    clock = FakeClock()
    token = CancelToken(debounce_seconds=1.0, clock=clock)
    token.attach()

    token.cancel()
    clock.now += 30
    assert token.cancelled is True

    token.detach()
    assert token.cancelled is False


def test_attach_drops_an_expired_cancellation():
    clock = FakeClock()
    token = CancelToken(debounce_seconds=1.0, clock=clock)
    token.cancel()
    clock.now += 2

    token.attach()
    assert token.attached is True
    assert token.cancelled is False


def test_attach_keeps_a_fresh_cancellation():
    clock = FakeClock()
    token = CancelToken(debounce_seconds=1.0, clock=clock)
    token.cancel()
    clock.now += 0.2

    token.attach()
    clock.now += 5
    assert token.cancelled is True
