"""
Tests for the build -> sign -> submit pipeline.
"""

import json

import pytest
from conftest import BUNDLER_HOST, RPC_HOST, SIGNATURE, USER_OP_HASH, FakeSystemWallet

from walletsdk.core.execution.errors import (
    ChainCallError,
    EncodingError,
    GasEstimationError,
    GasPriceUnavailable,
    SigningFailed,
    SubmissionError,
    UserDeclined,
)
from walletsdk.core.execution.gas import GasEstimator, GasPricer
from walletsdk.core.execution.pipeline import (
    OperationPipeline,
    OperationStatus,
    PipelineState,
)
from walletsdk.core.execution.userop import Call
from walletsdk.core.execution.userop_builder import UserOperationBuilder
from walletsdk.core.wallet.signing import SigningGateway
from walletsdk.core.wallet.system_wallet import DECLINE
from walletsdk.providers.bundler import BundlerProvider
from walletsdk.providers.chain import ChainReader

TARGET = "0x1111111111111111111111111111111111111111"
SENDER = "0x" + "ab" * 20


class StaticAccount:
    async def get_address(self) -> str:
        return SENDER

    async def get_init_code(self) -> str:
        return "0x"


class DecliningAccount(StaticAccount):
    async def get_address(self) -> str:
        raise UserDeclined("User declined the address request")


@pytest.fixture
def make_pipeline(network, http_client):
    def _make(
        system_wallet: FakeSystemWallet,
        custom_submitter=None,
        custom_estimator=None,
        account=None,
    ) -> OperationPipeline:
        bundler = BundlerProvider(network, http_client)
        builder = UserOperationBuilder(
            account=account or StaticAccount(),
            chain=ChainReader(network, http_client),
            gas_pricer=GasPricer(bundler),
            gas_estimator=GasEstimator(bundler, custom_estimator),
        )
        return OperationPipeline(
            builder=builder,
            gateway=SigningGateway(system_wallet),
            bundler=bundler,
            session="session-1",
            chain_id=network.chain_id,
            custom_submitter=custom_submitter,
        )

    return _make


@pytest.mark.asyncio
async def test_successful_run(router, make_pipeline, system_wallet) -> None:
    router.install_defaults()
    pipeline = make_pipeline(system_wallet)

    result = await pipeline.run([Call(target=TARGET, value=1)])

    assert result.status == OperationStatus.COMPLETED
    assert result.result == USER_OP_HASH
    assert result.user_operation.signature == SIGNATURE
    assert pipeline.history == [
        PipelineState.BUILDING,
        PipelineState.ESTIMATING,
        PipelineState.AWAITING_SIGNATURE,
        PipelineState.SUBMITTING,
        PipelineState.COMPLETED,
    ]


@pytest.mark.asyncio
async def test_signer_receives_unsigned_final_operation(router, make_pipeline, system_wallet) -> None:
    router.install_defaults()

    await make_pipeline(system_wallet).run([Call(target=TARGET)])

    ((session, payload, chain_id),) = system_wallet.requests_named("sign_user_operation")
    signed_request = json.loads(payload)
    assert session == "session-1"
    assert chain_id == 1
    assert signed_request["signature"] == "0x"
    assert signed_request["verificationGasLimit"] == hex(800_000)


@pytest.mark.asyncio
async def test_submitted_operation_carries_signature(router, make_pipeline, system_wallet, network) -> None:
    router.install_defaults()

    await make_pipeline(system_wallet).run([Call(target=TARGET)])

    (params,) = router.calls("eth_sendUserOperation", BUNDLER_HOST)
    assert params[0]["signature"] == SIGNATURE
    assert params[1] == network.entry_point


@pytest.mark.asyncio
async def test_decline_stops_before_submission(router, make_pipeline) -> None:
    router.install_defaults()
    wallet = FakeSystemWallet(signature=DECLINE)
    pipeline = make_pipeline(wallet)

    result = await pipeline.run([Call(target=TARGET)])

    assert result.status == OperationStatus.DECLINED
    assert result.result == DECLINE
    assert pipeline.state == PipelineState.DECLINED
    assert router.calls("eth_sendUserOperation") == []
    with pytest.raises(UserDeclined):
        result.raise_for_status()


@pytest.mark.asyncio
async def test_declined_address_request_is_a_decline(router, make_pipeline, system_wallet) -> None:
    router.install_defaults()
    pipeline = make_pipeline(system_wallet, account=DecliningAccount())

    result = await pipeline.run([Call(target=TARGET)])

    assert result.status == OperationStatus.DECLINED
    assert result.result == DECLINE
    assert result.error is None
    assert pipeline.history == [PipelineState.BUILDING, PipelineState.DECLINED]
    assert system_wallet.requests_named("sign_user_operation") == []
    assert router.calls("eth_sendUserOperation") == []


@pytest.mark.asyncio
async def test_empty_signature_fails(router, make_pipeline) -> None:
    router.install_defaults()

    result = await make_pipeline(FakeSystemWallet(signature="")).run([Call(target=TARGET)])

    assert result.status == OperationStatus.FAILED
    assert isinstance(result.error, SigningFailed)
    assert result.failed_in == PipelineState.AWAITING_SIGNATURE
    assert router.calls("eth_sendUserOperation") == []


@pytest.mark.asyncio
async def test_nonce_failure_never_prompts_user(router, make_pipeline, system_wallet) -> None:
    router.install_defaults()
    router.on(RPC_HOST, "eth_call", status_code=502, raw="bad gateway")

    result = await make_pipeline(system_wallet).run([Call(target=TARGET)])

    assert result.status == OperationStatus.FAILED
    assert isinstance(result.error, ChainCallError)
    assert result.failed_in == PipelineState.BUILDING
    assert system_wallet.requests_named("sign_user_operation") == []


@pytest.mark.asyncio
async def test_gas_price_failure_never_prompts_user(router, make_pipeline, system_wallet) -> None:
    router.install_defaults()
    router.on(BUNDLER_HOST, "pimlico_getUserOperationGasPrice", error={"code": -32000, "message": "no"})

    result = await make_pipeline(system_wallet).run([Call(target=TARGET)])

    assert isinstance(result.error, GasPriceUnavailable)
    assert system_wallet.requests_named("sign_user_operation") == []
    with pytest.raises(GasPriceUnavailable):
        result.raise_for_status()


@pytest.mark.asyncio
async def test_custom_estimator_exception_is_reported(router, make_pipeline, system_wallet) -> None:
    router.install_defaults()

    async def estimator(user_op):
        raise ConnectionError("estimator offline")

    result = await make_pipeline(system_wallet, custom_estimator=estimator).run([Call(target=TARGET)])

    assert result.status == OperationStatus.FAILED
    assert isinstance(result.error, GasEstimationError)
    assert isinstance(result.error.cause, ConnectionError)
    assert result.failed_in == PipelineState.ESTIMATING
    assert system_wallet.requests_named("sign_user_operation") == []
    assert router.calls("eth_estimateUserOperationGas") == []


@pytest.mark.asyncio
async def test_custom_estimator_wrong_return_type_is_reported(router, make_pipeline, system_wallet) -> None:
    router.install_defaults()

    async def estimator(user_op):
        return {"callGasLimit": "0x1"}

    result = await make_pipeline(system_wallet, custom_estimator=estimator).run([Call(target=TARGET)])

    assert isinstance(result.error, GasEstimationError)
    assert result.failed_in == PipelineState.ESTIMATING


@pytest.mark.asyncio
async def test_negative_gas_limit_override_propagates(router, make_pipeline, system_wallet) -> None:
    router.install_defaults()

    with pytest.raises(EncodingError):
        await make_pipeline(system_wallet).run([Call(target=TARGET)], call_gas_limit=-5)

    assert system_wallet.requests_named("sign_user_operation") == []
    assert router.calls("eth_sendUserOperation") == []


@pytest.mark.asyncio
async def test_bundler_rejection_is_reported(router, make_pipeline, system_wallet) -> None:
    router.install_defaults()
    router.on(
        BUNDLER_HOST,
        "eth_sendUserOperation",
        error={"code": -32500, "message": "AA25 invalid account nonce"},
    )

    result = await make_pipeline(system_wallet).run([Call(target=TARGET)])

    assert result.status == OperationStatus.FAILED
    assert isinstance(result.error, SubmissionError)
    assert result.error.message == "AA25 invalid account nonce"
    assert result.error.code == -32500
    assert result.failed_in == PipelineState.SUBMITTING


@pytest.mark.asyncio
async def test_custom_submitter_replaces_bundler(router, make_pipeline, system_wallet) -> None:
    router.install_defaults()
    submitted = []

    async def submitter(user_op):
        submitted.append(user_op)
        return json.dumps({"jsonrpc": "2.0", "id": 1, "result": "0xfeed"})

    result = await make_pipeline(system_wallet, custom_submitter=submitter).run([Call(target=TARGET)])

    assert result.result == "0xfeed"
    assert submitted[0].signature == SIGNATURE
    assert router.calls("eth_sendUserOperation") == []


@pytest.mark.asyncio
async def test_custom_submitter_error_envelope(router, make_pipeline, system_wallet) -> None:
    router.install_defaults()

    async def submitter(user_op):
        return json.dumps({"jsonrpc": "2.0", "id": 1, "error": {"code": -32602, "message": "rejected"}})

    result = await make_pipeline(system_wallet, custom_submitter=submitter).run([Call(target=TARGET)])

    assert isinstance(result.error, SubmissionError)
    assert result.error.message == "rejected"


@pytest.mark.asyncio
async def test_custom_submitter_exception_is_wrapped(router, make_pipeline, system_wallet) -> None:
    router.install_defaults()

    async def submitter(user_op):
        raise ConnectionError("socket closed")

    result = await make_pipeline(system_wallet, custom_submitter=submitter).run([Call(target=TARGET)])

    assert isinstance(result.error, SubmissionError)
    assert isinstance(result.error.cause, ConnectionError)


@pytest.mark.asyncio
async def test_encoding_error_propagates(router, make_pipeline, system_wallet) -> None:
    router.install_defaults()

    with pytest.raises(EncodingError):
        await make_pipeline(system_wallet).run([Call(target="0x1234")])


@pytest.mark.asyncio
async def test_pipeline_is_single_use(router, make_pipeline, system_wallet) -> None:
    router.install_defaults()
    pipeline = make_pipeline(system_wallet)
    await pipeline.run([Call(target=TARGET)])

    with pytest.raises(RuntimeError):
        await pipeline.run([Call(target=TARGET)])
