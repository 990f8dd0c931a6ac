"""Email eligibility for signing in."""

from dataclasses import dataclass

from imaginghub.config import settings
from imaginghub.services.errors import EmailNotAuthorized


@dataclass
class AccessDecision:
    allowed: bool
    reason: str


class EmailPolicy:
    """Restricts sign-in to a set of email domains.

    An empty domain list allows every address.
    """

    def __init__(self, allowed_domains: list[str] | None = None):
        domains = settings.allowed_email_domains if allowed_domains is None else allowed_domains
        self.allowed_domains = {d.strip().lower().lstrip("@") for d in domains if d.strip()}

    def check(self, email: str) -> AccessDecision:
        if not self.allowed_domains:
            return AccessDecision(allowed=True, reason="No domain restriction")

        domain = email.strip().lower().rpartition("@")[2]
        if domain in self.allowed_domains:
            return AccessDecision(allowed=True, reason="Approved domain")
        return AccessDecision(allowed=False, reason="Email not authorized. Please request access.")

    def require(self, email: str) -> None:
        """Raise EmailNotAuthorized unless ``email`` may sign in."""
        decision = self.check(email)
        if not decision.allowed:
            raise EmailNotAuthorized(decision.reason)


def get_email_policy() -> EmailPolicy:
    """FastAPI dependency returning the configured email policy."""
    return EmailPolicy()
