"""Summary: Client for external query and action workflows.

Importance: Sends intents to provider-agnostic automation endpoints and relays their replies.
Alternatives: Call provider APIs directly from the router.
"""

from __future__ import annotations

import json
import logging
import socket
from dataclasses import dataclass
from typing import Any
import urllib.error
import urllib.request

from voicepilot.errors import UpstreamWorkflowError


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WorkflowClient:
    """Summary: JSON-over-HTTP caller for named workflows under a base URL.

    Importance: Folds the upstream status into UpstreamWorkflowError on any non-2xx reply.
    Alternatives: Use a workflow engine SDK.
    """

    base_url: str
    timeout: float = 30.0

    def call(self, name: str, payload: dict[str, Any]) -> dict[str, Any]:
        """Summary: POST a payload to a workflow and return its JSON body.

        Importance: Never retries; the caller decides what a failure means.
        Alternatives: Retry idempotent workflows automatically.
        """

        url = f"{self.base_url.rstrip('/')}/{name}"
        request = urllib.request.Request(
            url,
            data=json.dumps(payload).encode("utf-8"),
            headers={"Content-Type": "application/json"},
            method="POST",
        )
        logger.info("Calling workflow %s.", name)
        try:
            with urllib.request.urlopen(request, timeout=self.timeout) as response:
                raw = response.read().decode("utf-8")
        except urllib.error.HTTPError as exc:
            body = exc.read().decode("utf-8", errors="replace")
            raise UpstreamWorkflowError(
                f"Workflow {name} failed with status {exc.code}: {body or exc.reason}",
                status=exc.code,
            ) from exc
        except (urllib.error.URLError, socket.timeout) as exc:
            raise UpstreamWorkflowError(f"Workflow {name} is unreachable: {exc}") from exc
        if not raw.strip():
            return {}
        try:
            data = json.loads(raw)
        except json.JSONDecodeError:
            return {"response": raw}
        if isinstance(data, dict):
            return data
        return {"response": data}
