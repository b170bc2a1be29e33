from .poller import AsyncOperationPoller, PollOutcome, PollState, PollStatus

__all__ = ["AsyncOperationPoller", "PollOutcome", "PollState", "PollStatus"]
