# advanced_export/tests/fakes.py

"""Test doubles for the queue and notification seams."""


class FakeQueue:
    """Records enqueued payloads instead of talking to a broker"""

    def __init__(self, fail_with=None):
        self.payloads = []
        self.fail_with = fail_with

    def enqueue(self, payload):
        if self.fail_with is not None:
            raise self.fail_with
        self.payloads.append(payload)
        return f"task-{len(self.payloads)}"


class FailingBackend:
    """Notification backend that always raises"""

    def __init__(self):
        self.attempts = 0

    def send(self, message, user_id=None):
        self.attempts += 1
        raise RuntimeError("notification service down")
