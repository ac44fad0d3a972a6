import threading

import pytest

from paxcore.core.cancellation import CancellationToken, checkpoint
from paxcore.core.errors import OperationCancelled, PaxError


def test_fresh_token_passes_checkpoints():
    token = CancellationToken()
    assert not token.cancelled
    token.checkpoint("walk")
    checkpoint(token, "walk")
    checkpoint(None, "walk")


def test_cancelled_token_raises_with_stage():
    token = CancellationToken()
    token.cancel("user abort")

    assert token.cancelled
    assert token.reason == "user abort"
    with pytest.raises(OperationCancelled) as excInfo:
        checkpoint(token, "install:make")
    assert excInfo.value.stage == "install:make"
    assert isinstance(excInfo.value, PaxError)


def test_cancel_from_another_thread():
    token = CancellationToken()
    worker = threading.Thread(target=token.cancel)
    worker.start()
    worker.join(timeout=5)

    with pytest.raises(OperationCancelled):
        token.checkpoint("resolve")
