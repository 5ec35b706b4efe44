"""Pre-submission validation of addresses and submission requests."""

import re
import logging
from typing import List, Optional

from ..errors import InvalidRequestError
from ..models.contract import SubmissionRequest

logger = logging.getLogger(__name__)

ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")
COMPILER_VERSION_RE = re.compile(
    r"^v\d+\.\d+\.\d+(?:-[0-9A-Za-z.]+)?(?:\+commit\.[0-9a-fA-F]+)?$"
)
HEX_RE = re.compile(r"^(?:0x)?[0-9a-fA-F]*$")


def validate_address(address: str) -> Optional[str]:
    """Return an error message if the address is not `0x` + 40 hex digits."""
    if not isinstance(address, str) or not ADDRESS_RE.match(address.strip()):
        return f"InvalidAddress: {address!r} is not a 0x-prefixed 20-byte hex address"
    return None


class RequestValidator:
    """
    Validator for normalized submission requests.

    Catches payloads the target explorer would reject synchronously, so no
    request is sent for them.
    """

    def validate(self, request: SubmissionRequest) -> List[str]:
        """
        Validate a submission request.

        Args:
            request: The normalized request

        Returns:
            List of error messages (empty if valid)
        """
        errors = []

        address_error = validate_address(request.address)
        if address_error:
            errors.append(address_error)

        if not request.contract_name:
            errors.append("Contract name is empty")

        if not COMPILER_VERSION_RE.match(request.compiler_version):
            errors.append(f"Malformed compiler version: {request.compiler_version!r}")

        if len(request.constructor_arguments) % 2 or not HEX_RE.match(request.constructor_arguments):
            errors.append("Constructor arguments are not a hex string")

        if request.runs < 0:
            errors.append(f"Optimizer runs must be non-negative, got {request.runs}")

        if not request.source_code:
            errors.append("Source code is empty")

        return errors

    def check(self, request: SubmissionRequest) -> None:
        """
        Raise if the request is invalid.

        Raises:
            InvalidRequestError: With all validation messages joined
        """
        errors = self.validate(request)
        if errors:
            logger.debug(f"Request for {request.address} failed validation: {errors}")
            raise InvalidRequestError("; ".join(errors))
