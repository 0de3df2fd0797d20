"""Certificate issuance and auto-renewal."""
from certs.acme import AcmeClient, AcmeError
from certs.renewal import SSLRenewalScheduler
