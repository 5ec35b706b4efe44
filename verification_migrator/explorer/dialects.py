"""Field-name tables for Etherscan-compatible explorer variants."""

from dataclasses import dataclass, field
from typing import Dict, Tuple

from ..models.contract import CodeFormat


@dataclass(frozen=True)
class ExplorerDialect:
    """
    How one explorer family names the verification API fields.

    The normalized SubmissionRequest is translated into request parameters
    through this table, so explorer differences stay out of the pipeline.
    """
    name: str
    module: str = "contract"
    get_source_action: str = "getsourcecode"
    verify_action: str = "verifysourcecode"
    check_status_action: str = "checkverifystatus"

    address_field: str = "contractaddress"
    source_code_field: str = "sourceCode"
    code_format_field: str = "codeformat"
    contract_name_field: str = "contractname"
    compiler_version_field: str = "compilerversion"
    optimization_field: str = "optimizationUsed"
    runs_field: str = "runs"
    evm_version_field: str = "evmversion"
    license_field: str = "licenseType"
    # Etherscan spells it this way; some forks accept the corrected spelling too
    constructor_argument_fields: Tuple[str, ...] = ("constructorArguements",)
    library_name_field: str = "libraryname{n}"
    library_address_field: str = "libraryaddress{n}"
    library_slots: int = 10

    code_format_values: Dict[CodeFormat, str] = field(default_factory=lambda: {
        CodeFormat.SINGLE_FILE: "solidity-single-file",
        CodeFormat.STANDARD_JSON_INPUT: "solidity-standard-json-input",
    })
    accepts_single_file: bool = True

    # Etherscan license type codes (https://etherscan.io/contract-license-types)
    license_codes: Dict[str, str] = field(default_factory=lambda: {
        "none": "1",
        "unlicense": "2",
        "mit": "3",
        "gnu gpl v2": "4",
        "gnu gpl v3": "5",
        "gnu lgpl v2.1": "6",
        "gnu lgpl v3": "7",
        "bsd-2-clause": "8",
        "bsd-3-clause": "9",
        "mpl-2.0": "10",
        "osl-3.0": "11",
        "apache-2.0": "12",
        "gnu agpl v3": "13",
        "bsl 1.1": "14",
    })

    def code_format_value(self, code_format: CodeFormat) -> str:
        return self.code_format_values[code_format]

    def license_value(self, license_type: str) -> str:
        """Translate a license name into the code the explorer expects."""
        if not license_type:
            return ""
        if license_type.isdigit():
            return license_type
        return self.license_codes.get(license_type.strip().lower(), "")


ETHERSCAN = ExplorerDialect(name="etherscan")

# Blockscout rejects flattened sources on this endpoint and reads the
# correctly spelled constructor argument field.
BLOCKSCOUT = ExplorerDialect(
    name="blockscout",
    constructor_argument_fields=("constructorArguements", "constructorArguments"),
    accepts_single_file=False,
)

DIALECTS: Dict[str, ExplorerDialect] = {
    ETHERSCAN.name: ETHERSCAN,
    BLOCKSCOUT.name: BLOCKSCOUT,
}


def get_dialect(name: str) -> ExplorerDialect:
    """Look up a dialect by name."""
    dialect = DIALECTS.get((name or "").lower())
    if dialect is None:
        raise ValueError(
            f"Unknown explorer dialect: {name!r} (expected one of {', '.join(sorted(DIALECTS))})"
        )
    return dialect
