"""acme.sh wrapper: renew certificates and read back their PEM material."""
import logging
import subprocess
from datetime import timezone
from pathlib import Path

from cryptography import x509
from cryptography.x509.oid import NameOID

from models.ssl import CertificateFiles, CertificateInfo

logger = logging.getLogger("proxywatch.certs.acme")


class AcmeError(Exception):
    """Issuance tool failure with a human-readable message."""
    def __init__(self, message, domain=None, returncode=None, output=None):
        super().__init__(message)
        self.domain = domain
        self.returncode = returncode
        self.output = output


def _common_name(name):
    attrs = name.get_attributes_for_oid(NameOID.COMMON_NAME)
    if attrs:
        return attrs[0].value
    return name.rfc4514_string()


class AcmeClient:
    def __init__(self, acme_sh="acme.sh", home="~/.acme.sh"):
        self.acme_sh = acme_sh
        self.home = Path(home).expanduser()

    def _cert_dir(self, domain) -> Path:
        for candidate in (self.home / f"{domain}_ecc", self.home / domain):
            if candidate.is_dir():
                return candidate
        raise AcmeError(f"No acme.sh certificate directory for {domain} under {self.home}", domain=domain)

    def renew(self, domain) -> CertificateFiles:
        """Force-renew ``domain`` and return the new certificate, key and chain."""
        cmd = [self.acme_sh, "--renew", "-d", domain, "--force", "--home", str(self.home)]
        logger.info(f"Renewing certificate for {domain}")
        try:
            result = subprocess.run(cmd, capture_output=True, text=True)
        except FileNotFoundError:
            raise AcmeError(f"{self.acme_sh} not found", domain=domain)

        if result.returncode != 0:
            output = (result.stderr or result.stdout).strip()
            raise AcmeError(
                f"acme.sh renewal failed for {domain}: {output.splitlines()[-1] if output else 'no output'}",
                domain=domain, returncode=result.returncode, output=output,
            )

        return self.read_files(domain)

    def read_files(self, domain) -> CertificateFiles:
        cert_dir = self._cert_dir(domain)
        try:
            return CertificateFiles(
                certificate=(cert_dir / f"{domain}.cer").read_text(),
                private_key=(cert_dir / f"{domain}.key").read_text(),
                chain=(cert_dir / "ca.cer").read_text(),
            )
        except OSError as e:
            raise AcmeError(f"Cannot read certificate files for {domain}: {e}", domain=domain)

    def parse(self, certificate_pem) -> CertificateInfo:
        """Extract the validity window from a PEM certificate."""
        try:
            cert = x509.load_pem_x509_certificate(certificate_pem.encode())
        except (ValueError, TypeError, AttributeError) as e:
            raise AcmeError(f"Invalid certificate: {e}")

        return CertificateInfo(
            valid_from=cert.not_valid_before_utc.astimezone(timezone.utc),
            valid_to=cert.not_valid_after_utc.astimezone(timezone.utc),
            issuer=_common_name(cert.issuer),
            subject=_common_name(cert.subject),
        )
