"""
HOMESERVER n8n Update Components
Copyright (C) 2024 HOMESERVER LLC

Health Checker Component

Confirms the service came back after a start:

    SERVICE_UNKNOWN --active--> SERVICE_ACTIVE --200--> RESPONDING
          |                          |
          +--inactive--> SERVICE_FAILED   +--timeout--> NOT_RESPONDING

SERVICE_FAILED is fatal. NOT_RESPONDING is a warning only: n8n may still be
initializing, or listen on a port other than the one probed.
"""

import time
from enum import Enum
from typing import Callable, Optional

import requests

from n8n_updates.utils.index import log_message
from n8n_updates.utils.config import UpgradeConfig
from n8n_updates.utils.errors import ServiceStartError
from n8n_updates.utils.systemd import SystemdService


class HealthState(Enum):
    SERVICE_UNKNOWN = "service_unknown"
    SERVICE_ACTIVE = "service_active"
    SERVICE_FAILED = "service_failed"
    RESPONDING = "responding"
    NOT_RESPONDING = "not_responding"


class HealthChecker:
    """Polls systemd and the HTTP health endpoint after a start."""

    def __init__(self, config: UpgradeConfig, service: SystemdService,
                 session: Optional[requests.Session] = None,
                 sleep: Callable[[float], None] = time.sleep):
        self.config = config
        self.service = service
        self.session = session or requests.Session()
        self.sleep = sleep
        self.state = HealthState.SERVICE_UNKNOWN
        self.attempts = 0

    def probe(self) -> bool:
        """Single GET against the health endpoint."""
        try:
            response = self.session.get(self.config.health_url, timeout=self.config.probe_timeout)
        except requests.RequestException as e:
            log_message(f"[HEALTH] Probe failed: {e}", "DEBUG")
            return False
        return response.status_code < 400

    def check(self) -> HealthState:
        """
        Run the state machine to a terminal state.

        Returns:
            HealthState: RESPONDING, NOT_RESPONDING or SERVICE_FAILED
        """
        log_message("[HEALTH] Performing health check...")
        self.state = HealthState.SERVICE_UNKNOWN
        self.attempts = 0

        self.sleep(self.config.settle_delay)
        if not self.service.is_active():
            self.state = HealthState.SERVICE_FAILED
            return self.state

        self.state = HealthState.SERVICE_ACTIVE
        log_message("[HEALTH] ✓ Service is running.")

        timeout = self.config.health_timeout
        log_message(f"[HEALTH] Waiting for n8n to be ready (up to {timeout} attempts)...")
        for attempt in range(1, timeout + 1):
            self.attempts = attempt
            if self.probe():
                self.state = HealthState.RESPONDING
                log_message(f"[HEALTH] ✓ n8n is responding to requests (attempt {attempt}/{timeout}).")
                return self.state
            self.sleep(self.config.probe_interval)

        self.state = HealthState.NOT_RESPONDING
        port = self.config.health_port
        log_message(f"[HEALTH] ⚠ WARNING: n8n service is running but not responding on port {port}.", "WARNING")
        log_message("[HEALTH] ⚠ This may be normal if n8n is still initializing or uses a different port.", "WARNING")
        log_message(f"[HEALTH] ⚠ Check manually: curl {self.config.health_url}", "WARNING")
        return self.state

    def verify(self) -> HealthState:
        """
        check(), raising on a service that never became active.

        Raises:
            ServiceStartError: If systemd does not report the unit active
        """
        state = self.check()
        if state is HealthState.SERVICE_FAILED:
            raise ServiceStartError(
                f"{self.config.service_name} failed to start. "
                f"Inspect logs with: journalctl -u {self.config.service_name}"
            )
        return state
