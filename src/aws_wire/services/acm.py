# src/aws_wire/services/acm.py

"""
AWS Certificate Manager.

Certificates used by CloudFront must be requested in ``us-east-1`` whatever
region the rest of the stack lives in.
"""

from typing import Any, Literal, Mapping

from ..protocols import JsonRpcProtocol
from .base import ServiceClient, tag_list


class ACMClient(ServiceClient):
    signing_name = "acm"

    @classmethod
    def build_protocol(cls) -> JsonRpcProtocol:
        return JsonRpcProtocol("CertificateManager", json_version="1.1")

    def request_certificate(
        self,
        domain_name: str,
        subject_alternative_names: list[str] | None = None,
        validation_method: Literal["DNS", "EMAIL"] = "DNS",
        idempotency_token: str | None = None,
        key_algorithm: str | None = None,
        tags: Mapping[str, str] | None = None,
    ) -> str:
        """Requests a public certificate and returns its ARN."""
        result = self._call(
            "RequestCertificate",
            {
                "DomainName": domain_name,
                "SubjectAlternativeNames": subject_alternative_names or None,
                "ValidationMethod": validation_method,
                "IdempotencyToken": idempotency_token,
                "KeyAlgorithm": key_algorithm,
                "Tags": tag_list(tags),
            },
        )
        return result.get("CertificateArn", "")

    def describe_certificate(self, certificate_arn: str) -> dict[str, Any]:
        result = self._call("DescribeCertificate", {"CertificateArn": certificate_arn})
        return result.get("Certificate", {})

    def list_certificates(
        self,
        certificate_statuses: list[str] | None = None,
        next_token: str | None = None,
        max_items: int | None = None,
    ) -> dict[str, Any]:
        return self._call(
            "ListCertificates",
            {
                "CertificateStatuses": certificate_statuses,
                "NextToken": next_token,
                "MaxItems": max_items,
            },
        )

    def delete_certificate(self, certificate_arn: str) -> None:
        self._call("DeleteCertificate", {"CertificateArn": certificate_arn})

    def add_tags_to_certificate(self, certificate_arn: str, tags: Mapping[str, str]) -> None:
        self._call(
            "AddTagsToCertificate",
            {"CertificateArn": certificate_arn, "Tags": tag_list(tags)},
        )

    def list_tags_for_certificate(self, certificate_arn: str) -> dict[str, str]:
        result = self._call("ListTagsForCertificate", {"CertificateArn": certificate_arn})
        return {tag["Key"]: tag.get("Value", "") for tag in result.get("Tags", [])}

    def resend_validation_email(
        self, certificate_arn: str, domain: str, validation_domain: str
    ) -> None:
        self._call(
            "ResendValidationEmail",
            {
                "CertificateArn": certificate_arn,
                "Domain": domain,
                "ValidationDomain": validation_domain,
            },
        )
