"""
Email step-up authentication for unknown IPs.

An IP that is not on the allow-list is rejected and, the first time it is
seen, gets a single-use code. The code is mailed to every configured recipient
as a confirmation link; redeeming it through the control server adds the IP to
the allow-list so its next connection is relayed.
"""

import logging
import secrets
import socket
import threading

from errors import DeliveryError, GatekeeperError, RandomSourceError

log = logging.getLogger(__name__)

CODE_BYTES = 32  # 256 bits

SUCCESS = "success"
INVALID_CODE = "invalid code"


class StepUpAuthenticator:
    def __init__(self, allowlist, mailer, recipients=(), api_url=""):
        self.allowlist = allowlist
        self.mailer = mailer
        self.recipients = tuple(recipients)
        self.api_url = api_url.rstrip("/")
        self._codes = {}  # code -> ip
        self._by_ip = {}  # ip -> set of codes
        self._lock = threading.Lock()

    def verdict(self, ip):
        """Return True if *ip* may connect; start the email flow otherwise."""
        if self.allowlist.contains(ip):
            return True

        with self._lock:
            if self.allowlist.contains(ip):
                return True
            if ip in self._by_ip:
                return False
            try:
                code = self._issue_locked(ip)
            except RandomSourceError as exc:
                log.error("Could not issue a code for %s: %s", ip, exc)
                return False

        log.info("Issued confirmation code for %s", ip)
        self._notify_in_background(ip, code)
        return False

    def issue_code(self, ip):
        """Store and return a fresh code for *ip*."""
        with self._lock:
            return self._issue_locked(ip)

    def _issue_locked(self, ip):
        code = ""
        while not code or code in self._codes:
            try:
                code = secrets.token_urlsafe(CODE_BYTES)
            except OSError as exc:
                raise RandomSourceError(str(exc)) from exc
        self._codes[code] = ip
        self._by_ip.setdefault(ip, set()).add(code)
        return code

    def has_pending(self, ip):
        with self._lock:
            return ip in self._by_ip

    def pending_count(self):
        with self._lock:
            return len(self._codes)

    def code_ip(self, code):
        with self._lock:
            return self._codes.get(code)

    def _take_locked(self, code):
        ip = self._codes.pop(code, None)
        if ip is not None:
            codes = self._by_ip.get(ip, set())
            codes.discard(code)
            if not codes:
                self._by_ip.pop(ip, None)
        return ip

    def redeem(self, code):
        """Consume *code* and allow-list its IP. Returns a plain-text result."""
        with self._lock:
            ip = self._take_locked(code)
            if ip is None:
                return INVALID_CODE
            try:
                self.allowlist.add(ip)
            except GatekeeperError as exc:
                log.error("Redeemed code for %s but the allow-list update failed: %s", ip, exc)
                return f"error: {exc}"
        log.info("Code redeemed, %s added to the allow-list", ip)
        return SUCCESS

    def confirmation_link(self, code):
        return f"{self.api_url}/authenticate?code={code}"

    def notify(self, ip, code):
        """Mail the confirmation link to every recipient. Raises DeliveryError."""
        if not self.recipients:
            log.warning("No notification recipients configured; %s cannot be confirmed", ip)
            return
        hostname = socket.gethostname()
        subject = f"Access attempt on machine: {hostname}"
        body = (
            f"Login attempt from {ip}.\n"
            f"Click below to verify this IP.\n\n"
            f"{self.confirmation_link(code)}"
        )
        messages = [self.mailer.compose(r, subject, body) for r in self.recipients]
        self.mailer.send(messages)
        log.info("Sent confirmation request for %s to %d recipient(s)", ip, len(messages))

    def _notify_in_background(self, ip, code):
        thread = threading.Thread(
            target=self._deliver, args=(ip, code), name=f"notify-{ip}", daemon=True
        )
        thread.start()
        return thread

    def _deliver(self, ip, code):
        try:
            self.notify(ip, code)
        except Exception as exc:
            # Drop the undeliverable code so a later attempt from this IP retries.
            with self._lock:
                self._take_locked(code)
            if isinstance(exc, DeliveryError):
                log.error("Notification for %s failed: %s", ip, exc)
            else:
                log.exception("Notification for %s failed unexpectedly", ip)
