"""Shared test fixtures for the verification migrator test suite."""

import json
from typing import Any, Dict, List, Optional

import pytest
from unittest.mock import MagicMock

from verification_migrator.errors import AlreadyVerifiedError
from verification_migrator.explorer.dialects import ETHERSCAN
from verification_migrator.explorer.rate_limiter import reset_registry
from verification_migrator.models.contract import PollResult, SingleFile, SourceMetadata
from verification_migrator.models.migration import (
    ExplorerConfig,
    MigrationConfig,
    PollPolicy,
    RetryPolicy,
)

ADDRESS_A = "0x" + "a" * 40
ADDRESS_B = "0x" + "b" * 40
ADDRESS_C = "0x" + "c" * 40


def make_response(
    status_code: int = 200,
    json_data: Any = None,
    text: str = "",
    headers: Optional[Dict[str, str]] = None,
) -> MagicMock:
    """Build a mock requests.Response."""
    resp = MagicMock()
    resp.status_code = status_code
    resp.headers = headers or {}
    if json_data is not None:
        resp.json.return_value = json_data
        resp.text = text or json.dumps(json_data)
    else:
        resp.json.side_effect = ValueError("No JSON object could be decoded")
        resp.text = text
    return resp


def envelope(status: str = "1", message: str = "OK", result: Any = "") -> Dict[str, Any]:
    """Build an Etherscan-style response body."""
    return {"status": status, "message": message, "result": result}


def make_session(*responses) -> MagicMock:
    """A session whose request() returns (or raises) the given items in order."""
    session = MagicMock()
    session.request.side_effect = list(responses)
    return session


class FakeExplorer:
    """
    In-memory stand-in for ExplorerClient used by orchestrator tests.

    Sources are keyed by address; a value that is an exception is raised.
    Submit results and poll results are consumed per address in order.
    """

    def __init__(self, dialect=ETHERSCAN):
        self.dialect = dialect
        self.sources: Dict[str, Any] = {}
        self.submissions: Dict[str, List[Any]] = {}
        self.polls: Dict[str, List[Any]] = {}
        self.fetch_calls: List[str] = []
        self.submit_calls: List[Any] = []
        self.poll_calls: List[str] = []
        self.closed = False

    def fetch_source(self, address):
        self.fetch_calls.append(address)
        value = self.sources[address]
        if isinstance(value, Exception):
            raise value
        return value

    def submit(self, request):
        self.submit_calls.append(request)
        value = self.submissions[request.address].pop(0)
        if isinstance(value, Exception):
            raise value
        return value

    def poll_status(self, guid):
        self.poll_calls.append(guid)
        value = self.polls[guid].pop(0)
        if isinstance(value, Exception):
            raise value
        return value

    def close(self):
        self.closed = True


def make_metadata(address: str = ADDRESS_A, **overrides) -> SourceMetadata:
    values = dict(
        address=address,
        contract_name="Token",
        compiler_version="v0.8.19+commit.7dd6d404",
        source_code=SingleFile("pragma solidity ^0.8.19;\n\ncontract Token {}\n"),
        optimization_used=True,
        runs=200,
        license_type="MIT",
        constructor_arguments="000000000000000000000000000000000000000000000000000000000000002a",
    )
    values.update(overrides)
    return SourceMetadata(**values)


@pytest.fixture(autouse=True)
def _reset_rate_limiters():
    """Rate limiters are shared per URL and key; start every test fresh."""
    reset_registry()
    yield
    reset_registry()


@pytest.fixture
def fast_retry():
    return RetryPolicy(max_attempts=3, initial_delay=0.0, max_delay=0.0)


@pytest.fixture
def source_config(fast_retry):
    return ExplorerConfig(
        base_url="https://source.example/api",
        api_key="source-key",
        min_request_interval=0.0,
        retry=fast_retry,
    )


@pytest.fixture
def target_config(fast_retry):
    return ExplorerConfig(
        base_url="https://target.example/api",
        api_key="target-key",
        min_request_interval=0.0,
        retry=fast_retry,
    )


@pytest.fixture
def migration_config(source_config, target_config):
    return MigrationConfig(
        source=source_config,
        target=target_config,
        max_workers=2,
        poll=PollPolicy(max_polls=3, interval=0.0),
    )


@pytest.fixture
def standard_json_document():
    return {
        "language": "Solidity",
        "sources": {
            "contracts/Token.sol": {
                "content": 'pragma solidity ^0.8.19;\nimport "./Lib.sol";\n\ncontract Token {}\n',
            },
            "contracts/Lib.sol": {
                "content": "pragma solidity ^0.8.19;\n\nlibrary Lib {}\n",
            },
        },
        "settings": {
            "optimizer": {"enabled": True, "runs": 200},
            "outputSelection": {"*": {"*": ["abi", "evm.bytecode"]}},
        },
    }


@pytest.fixture
def source_item():
    """A `getsourcecode` result item for a flattened, verified contract."""
    return {
        "SourceCode": "pragma solidity ^0.8.19;\n\ncontract Token {}\n",
        "ABI": "[]",
        "ContractName": "Token",
        "CompilerVersion": "v0.8.19+commit.7dd6d404",
        "OptimizationUsed": "1",
        "Runs": "200",
        "ConstructorArguments": "",
        "EVMVersion": "Default",
        "Library": "",
        "LicenseType": "MIT",
        "Proxy": "0",
        "Implementation": "",
        "SwarmSource": "",
    }


@pytest.fixture
def fake_source():
    return FakeExplorer()


@pytest.fixture
def fake_target():
    return FakeExplorer()


def already_verified() -> AlreadyVerifiedError:
    return AlreadyVerifiedError("Contract source code already verified")


def pass_result() -> PollResult:
    return PollResult.success("Pass - Verified")
