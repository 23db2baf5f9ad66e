import asyncio
import inspect
from collections import Counter
from typing import Dict, List, Optional

from eduportal.core.exceptions import ApiError


class FlakyApi:
    """Wraps an API client, counting calls and injecting failures or delays.

    ``failures`` maps an operation name to how many of its next calls fail;
    ``delays`` maps an operation name to seconds slept before delegating.
    """

    def __init__(self, api, failures: Optional[Dict[str, int]] = None, delays: Optional[Dict[str, float]] = None):
        self._api = api
        self.failures = dict(failures or {})
        self.delays = dict(delays or {})
        self.fail_ids: Dict[str, set] = {}
        self.calls = Counter()

    def fail_for(self, operation: str, *ids: str):
        """Fail ``operation`` whenever its first argument is one of ``ids``."""
        self.fail_ids.setdefault(operation, set()).update(ids)

    def __getattr__(self, name):
        target = getattr(self._api, name)
        if not inspect.iscoroutinefunction(target):
            return target

        async def wrapper(*args, **kwargs):
            self.calls[name] += 1
            if self.delays.get(name):
                await asyncio.sleep(self.delays[name])
            if self.failures.get(name, 0) > 0:
                self.failures[name] -= 1
                raise ApiError(f"{name} unavailable", status_code=503)
            if args and args[0] in self.fail_ids.get(name, ()):
                raise ApiError(f"{name} rejected {args[0]}", status_code=500)
            return await target(*args, **kwargs)

        return wrapper


class Recorder:
    """Collects confirm prompts, notifications and redirects from a controller."""

    def __init__(self, confirm_answer: bool = True):
        self.confirm_answer = confirm_answer
        self.confirm_calls: List[List[str]] = []
        self.notifications = []
        self.redirects = []

    async def confirm(self, unanswered_ids):
        self.confirm_calls.append(list(unanswered_ids))
        return self.confirm_answer

    def notify(self, notification):
        self.notifications.append(notification)

    def redirect(self, target, attempt_id=None):
        self.redirects.append((target, attempt_id))

    def titles(self) -> List[str]:
        return [n.title for n in self.notifications]


async def wait_for(predicate, timeout: float = 5.0, interval: float = 0.005):
    async def _poll():
        while not predicate():
            await asyncio.sleep(interval)
    await asyncio.wait_for(_poll(), timeout)
