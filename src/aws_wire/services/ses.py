# src/aws_wire/services/ses.py

"""
Amazon SES through the v1 Query API.

The endpoint host is ``email.<region>.amazonaws.com`` but requests are signed
for the ``ses`` service.
"""

from typing import Any

from ..exceptions import ValidationError
from ..protocols import QueryProtocol
from .base import ServiceClient, as_list

API_VERSION = "2010-12-01"


class SESClient(ServiceClient):
    signing_name = "ses"
    endpoint_prefix = "email"

    @classmethod
    def build_protocol(cls) -> QueryProtocol:
        return QueryProtocol(API_VERSION)

    def send_email(
        self,
        source: str,
        to_addresses: list[str],
        subject: str,
        text_body: str | None = None,
        html_body: str | None = None,
        cc_addresses: list[str] | None = None,
        bcc_addresses: list[str] | None = None,
        reply_to_addresses: list[str] | None = None,
        return_path: str | None = None,
        charset: str = "UTF-8",
    ) -> str:
        """Sends a formatted email and returns its message id."""
        if text_body is None and html_body is None:
            raise ValidationError(
                "send_email needs a text_body or an html_body", code="InvalidArgument"
            )
        if not to_addresses and not cc_addresses and not bcc_addresses:
            raise ValidationError("send_email needs at least one recipient", code="InvalidArgument")

        body: dict[str, Any] = {}
        if text_body is not None:
            body["Text"] = {"Data": text_body, "Charset": charset}
        if html_body is not None:
            body["Html"] = {"Data": html_body, "Charset": charset}

        result = self._call(
            "SendEmail",
            {
                "Source": source,
                "Destination": {
                    "ToAddresses": to_addresses or None,
                    "CcAddresses": cc_addresses or None,
                    "BccAddresses": bcc_addresses or None,
                },
                "Message": {
                    "Subject": {"Data": subject, "Charset": charset},
                    "Body": body,
                },
                "ReplyToAddresses": reply_to_addresses or None,
                "ReturnPath": return_path,
            },
        )
        return result.get("MessageId") or ""

    def verify_email_identity(self, email_address: str) -> None:
        self._call("VerifyEmailIdentity", {"EmailAddress": email_address})

    def verify_domain_identity(self, domain: str) -> str:
        """Returns the token to publish as a TXT record at ``_amazonses.<domain>``."""
        result = self._call("VerifyDomainIdentity", {"Domain": domain})
        return result.get("VerificationToken") or ""

    def verify_domain_dkim(self, domain: str) -> list[str]:
        """Returns the three DKIM tokens to publish as CNAME records."""
        result = self._call("VerifyDomainDkim", {"Domain": domain})
        return as_list(result.get("DkimTokens"))

    def list_identities(
        self,
        identity_type: str | None = None,
        next_token: str | None = None,
        max_items: int | None = None,
    ) -> dict[str, Any]:
        result = self._call(
            "ListIdentities",
            {"IdentityType": identity_type, "NextToken": next_token, "MaxItems": max_items},
        )
        return {"Identities": as_list(result.get("Identities")), "NextToken": result.get("NextToken")}

    def get_identity_verification_attributes(self, identities: list[str]) -> dict[str, Any]:
        """Maps each identity to its ``VerificationStatus`` (and token, for domains)."""
        result = self._call("GetIdentityVerificationAttributes", {"Identities": identities})
        return result.get("VerificationAttributes") or {}

    def delete_identity(self, identity: str) -> None:
        self._call("DeleteIdentity", {"Identity": identity})

    def get_send_quota(self) -> dict[str, float]:
        result = self._call("GetSendQuota")
        return {
            name: float(result.get(name) or 0)
            for name in ("Max24HourSend", "MaxSendRate", "SentLast24Hours")
        }

    def get_send_statistics(self) -> list[dict[str, Any]]:
        """Returns data points for the last two weeks, in 15-minute intervals."""
        result = self._call("GetSendStatistics")
        points = []
        for point in as_list(result.get("SendDataPoints")):
            points.append(
                {
                    "Timestamp": point.get("Timestamp"),
                    **{
                        name: int(point.get(name) or 0)
                        for name in ("DeliveryAttempts", "Bounces", "Complaints", "Rejects")
                    },
                }
            )
        return points
