"""
Certificate checker for the certificate monitor.

Performs a single TLS handshake per target and reads the expiry of the leaf
certificate. Failures are never raised past this module: they are returned
as failed CheckOutcome / VerifyOutcome values carrying a readable reason.
"""

import socket
import ssl
from datetime import datetime, timezone
from typing import Callable, Optional

from cryptography import x509

from .enums import ProbeErrorCode
from .exceptions import ProbeError
from .models import CheckOutcome, DomainTarget, VerifyOutcome


DEFAULT_TIMEOUT_SECONDS = 10.0
SECONDS_PER_DAY = 86400.0


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class CertificateChecker:
    """
    TLS certificate prober.

    ``check`` reads the leaf certificate expiry, honouring the target's
    ``insecure_skip_verify`` flag for the handshake. ``verify_chain`` is a
    stricter diagnostic pass that always validates the presented chain
    against the system trust roots and the configured hostname.
    """

    def __init__(
        self,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        """
        Initialize the checker.

        Args:
            timeout: Connect and handshake timeout in seconds
            clock: Returns the current UTC time (injectable for tests)
        """
        self._timeout = timeout
        self._clock = clock or _utc_now

    @property
    def timeout(self) -> float:
        return self._timeout

    def check(self, target: DomainTarget) -> CheckOutcome:
        """
        Probe a target and compute the days remaining on its leaf certificate.

        Args:
            target: The domain to probe

        Returns:
            CheckOutcome; ``success`` is False with ``error`` set on any failure
        """
        try:
            der = self._fetch_leaf_certificate(target, verify=not target.insecure_skip_verify)
            expiry = self.parse_expiry(der)
        except ProbeError as e:
            return CheckOutcome(
                target=target,
                success=False,
                error=e.message,
                error_code=ProbeErrorCode(e.code),
            )

        return CheckOutcome(
            target=target,
            success=True,
            expiry=expiry,
            days_remaining=self.days_until(expiry),
        )

    def verify_chain(self, target: DomainTarget) -> VerifyOutcome:
        """
        Strictly verify the certificate chain presented by a target.

        The handshake always uses a verifying context: the leaf is validated
        through the intermediates the server presented up to a system trust
        root, and the configured host must match the certificate.
        """
        try:
            self._fetch_leaf_certificate(target, verify=True)
        except ProbeError as e:
            return VerifyOutcome(target=target, verified=False, error=e.message)
        return VerifyOutcome(target=target, verified=True)

    def days_until(self, expiry: datetime) -> float:
        """Signed number of days until ``expiry``; negative once expired."""
        return (expiry - self._clock()).total_seconds() / SECONDS_PER_DAY

    @staticmethod
    def parse_expiry(der: bytes) -> datetime:
        """
        Extract the notAfter time from a DER-encoded certificate.

        Raises:
            ProbeError: If the certificate cannot be parsed
        """
        try:
            cert = x509.load_der_x509_certificate(der)
        except ValueError as e:
            raise ProbeError(
                code=ProbeErrorCode.PARSE_ERROR.value,
                message=f"Failed to parse certificate: {e}",
            )
        return cert.not_valid_after_utc

    def _create_context(self, verify: bool) -> ssl.SSLContext:
        context = ssl.create_default_context()
        if not verify:
            context.check_hostname = False
            context.verify_mode = ssl.CERT_NONE
        return context

    def _fetch_leaf_certificate(self, target: DomainTarget, verify: bool) -> bytes:
        """
        Open one TLS connection and return the leaf certificate in DER form.

        Raises:
            ProbeError: On DNS, connection, timeout or handshake failure, or
                when the server presents no certificate
        """
        context = self._create_context(verify)
        try:
            with socket.create_connection(
                (target.host, target.port), timeout=self._timeout
            ) as sock:
                with context.wrap_socket(sock, server_hostname=target.host) as ssock:
                    der = ssock.getpeercert(binary_form=True)
        except socket.gaierror as e:
            raise ProbeError(
                code=ProbeErrorCode.DNS_ERROR.value,
                message=f"DNS lookup failed for {target.host}: {e}",
            )
        except TimeoutError as e:
            raise ProbeError(
                code=ProbeErrorCode.TIMEOUT.value,
                message=f"Timed out connecting to {target.address} after {self._timeout}s: {e}",
            )
        except ssl.SSLCertVerificationError as e:
            raise ProbeError(
                code=ProbeErrorCode.TLS_ERROR.value,
                message=f"Certificate verification failed: {getattr(e, 'verify_message', None) or e}",
            )
        except ssl.SSLError as e:
            raise ProbeError(
                code=ProbeErrorCode.TLS_ERROR.value,
                message=f"TLS handshake failed: {e}",
            )
        except OSError as e:
            raise ProbeError(
                code=ProbeErrorCode.CONNECTION_ERROR.value,
                message=f"Connection to {target.address} failed: {e}",
            )

        if not der:
            raise ProbeError(
                code=ProbeErrorCode.NO_CERTIFICATE.value,
                message="No certificates presented",
            )
        return der
