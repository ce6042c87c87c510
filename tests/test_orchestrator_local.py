import pytest

from diamond_deployer.deployment.callbacks import FacetCallbackManager
from diamond_deployer.deployment.context import PipelinePhase
from diamond_deployer.deployment.orchestrator import DeploymentOrchestrator, hook_middleware, logging_middleware
from diamond_deployer.deployment.strategies.local import LocalDeploymentStrategy
from diamond_deployer.domain.diamond import Diamond
from diamond_deployer.domain.models.deployment import (
    DIAMOND_CUT_FACET,
    DeployConfig,
    DeployedDiamondData,
    DeployedFacet,
    DeploymentMode,
    DeploymentStatus,
    FacetCutAction,
)
from diamond_deployer.domain.repositories.deployment_repository import (
    FileDeploymentRepository,
    InMemoryDeploymentRepository,
)
from diamond_deployer.infrastructure.blockchain.selectors import DIAMOND_CUT_SELECTOR

from conftest import write_diamond_config

pytestmark = pytest.mark.anyio("asyncio")

BASE_CONFIG = {
    "protocolVersion": 0,
    "facets": {
        "OwnershipFacet": {"priority": 10},
        "TokenFacet": {"priority": 20},
        "AdminFacet": {"priority": 30},
    },
}


def make_config(overrides=None) -> DeployConfig:
    raw = {"protocolVersion": BASE_CONFIG["protocolVersion"], "facets": dict(BASE_CONFIG["facets"])}
    raw.update(overrides or {})
    return DeployConfig.model_validate(raw)


def make_orchestrator(repository, artifact_source, executor, callbacks=None, middlewares=None):
    return DeploymentOrchestrator(
        Diamond(repository),
        LocalDeploymentStrategy(artifact_source, executor),
        callback_runner=callbacks or FacetCallbackManager(),
        middlewares=middlewares,
    )


@pytest.mark.anyio
async def test_fresh_deployment_deploys_everything_and_adds_all_facets(artifact_source, local_executor):
    repository = InMemoryDeploymentRepository("ExampleDiamond", make_config())

    result = await make_orchestrator(repository, artifact_source, local_executor).run()

    assert result.mode is DeploymentMode.DEPLOY
    assert result.status is DeploymentStatus.COMPLETED
    assert local_executor.deployed_names() == [
        DIAMOND_CUT_FACET,
        "ExampleDiamond",
        "OwnershipFacet",
        "TokenFacet",
        "AdminFacet",
    ]
    proxy_args = local_executor.deployments[1][1]
    assert proxy_args == [
        local_executor.deployer,
        repository.deployed_data.deployed_facets[DIAMOND_CUT_FACET].address,
    ]

    assert len(local_executor.cuts) == 1
    cut = local_executor.cuts[0]
    assert cut["diamond"] == result.diamond_address
    assert [record["action"] for record in cut["cuts"]] == [int(FacetCutAction.ADD)] * 3
    assert result.cut_count == 3

    saved = repository.deployed_data
    assert saved.diamond_address == result.diamond_address
    assert saved.deployer_address == local_executor.deployer
    assert set(saved.deployed_facets) == {DIAMOND_CUT_FACET, "OwnershipFacet", "TokenFacet", "AdminFacet"}
    assert saved.deployed_facets[DIAMOND_CUT_FACET].func_selectors == [DIAMOND_CUT_SELECTOR]
    assert saved.deployed_facets["TokenFacet"].func_selectors == ["0xa9059cbb", "0x70a08231"]


@pytest.mark.anyio
async def test_rerun_with_unchanged_config_is_a_no_op(artifact_source, local_executor):
    repository = InMemoryDeploymentRepository("ExampleDiamond", make_config())
    await make_orchestrator(repository, artifact_source, local_executor).run()
    deployments_before = len(local_executor.deployments)
    saves_before = repository.save_count

    result = await make_orchestrator(repository, artifact_source, local_executor).run()

    assert result.mode is DeploymentMode.UPGRADE
    assert result.deployed_facets == []
    assert result.cut_count == 0
    assert len(local_executor.deployments) == deployments_before
    assert len(local_executor.cuts) == 1
    assert repository.save_count == saves_before


@pytest.mark.anyio
async def test_facet_at_or_above_target_version_is_not_redeployed(artifact_source, local_executor):
    deployed = DeployedDiamondData(
        diamond_address="0x" + "dd" * 20,
        deployed_facets={
            "OwnershipFacet": DeployedFacet(
                address="0x" + "01" * 20, version=2, func_selectors=["0x8da5cb5b", "0xf2fde38b"]
            ),
        },
    )
    config = DeployConfig.model_validate(
        {"facets": {"OwnershipFacet": {"priority": 10, "versions": {"0": {}, "1": {}}}}}
    )
    repository = InMemoryDeploymentRepository("ExampleDiamond", config, deployed)

    result = await make_orchestrator(repository, artifact_source, local_executor).run()

    assert local_executor.deployments == []
    assert local_executor.cuts == []
    assert result.cut_count == 0


@pytest.mark.anyio
async def test_upgrade_with_excluded_selector_replaces_and_removes(artifact_source, local_executor):
    repository = InMemoryDeploymentRepository("ExampleDiamond", make_config())
    await make_orchestrator(repository, artifact_source, local_executor).run()
    old_address = repository.deployed_data.deployed_facets["OwnershipFacet"].address

    repository.deploy_config = make_config(
        {
            "facets": {
                **BASE_CONFIG["facets"],
                "OwnershipFacet": {
                    "priority": 10,
                    "versions": {"0": {}, "1": {"deployExclude": ["0xf2fde38b"]}},
                },
            }
        }
    )
    result = await make_orchestrator(repository, artifact_source, local_executor).run()

    assert result.deployed_facets == ["OwnershipFacet"]
    cut_records = local_executor.cuts[-1]["cuts"]
    replace = [record for record in cut_records if record["action"] == int(FacetCutAction.REPLACE)]
    remove = [record for record in cut_records if record["action"] == int(FacetCutAction.REMOVE)]
    assert replace[0]["functionSelectors"] == ["0x8da5cb5b"]
    assert replace[0]["facetAddress"] != old_address
    assert remove[0]["functionSelectors"] == ["0xf2fde38b"]
    assert remove[0]["facetAddress"] == "0x" + "0" * 40

    ownership = repository.deployed_data.deployed_facets["OwnershipFacet"]
    assert ownership.func_selectors == ["0x8da5cb5b"]
    assert ownership.version == 1


@pytest.mark.anyio
async def test_removed_facet_selectors_are_cut_out(artifact_source, local_executor):
    repository = InMemoryDeploymentRepository("ExampleDiamond", make_config())
    await make_orchestrator(repository, artifact_source, local_executor).run()

    facets = dict(BASE_CONFIG["facets"])
    facets.pop("AdminFacet")
    repository.deploy_config = make_config({"facets": facets})
    result = await make_orchestrator(repository, artifact_source, local_executor).run()

    assert result.cut_count == 1
    assert local_executor.cuts[-1]["cuts"][0]["action"] == int(FacetCutAction.REMOVE)
    assert "AdminFacet" not in repository.deployed_data.deployed_facets
    assert DIAMOND_CUT_FACET in repository.deployed_data.deployed_facets


@pytest.mark.anyio
async def test_protocol_and_facet_initializers(artifact_source, local_executor):
    artifact_source.selectors["InitFacet"] = ["0x8129fc1c"]
    config = make_config(
        {
            "protocolVersion": 1,
            "protocolInitFacet": "InitFacet",
            "facets": {
                **BASE_CONFIG["facets"],
                "InitFacet": {"priority": 5, "versions": {"1": {"deployInit": "initialize"}}},
                "TokenFacet": {"priority": 20, "versions": {"0": {"deployInit": "initToken"}}},
            },
        }
    )
    repository = InMemoryDeploymentRepository("ExampleDiamond", config)

    result = await make_orchestrator(repository, artifact_source, local_executor).run()

    cut = local_executor.cuts[0]
    init_address = repository.deployed_data.deployed_facets["InitFacet"].address
    assert cut["init_address"] == init_address
    assert cut["init_calldata"] == "0x8129fc1c"
    assert local_executor.calls == [(result.diamond_address, "TokenFacet", "initToken")]
    assert repository.deployed_data.protocol_version == 1


@pytest.mark.anyio
async def test_callbacks_run_after_cut_with_diamond_handle(artifact_source, local_executor):
    seen = []

    async def grant_roles(diamond):
        seen.append(("grant_roles", diamond.diamond_address, repository.save_count))

    def seed(diamond):
        seen.append(("seed", diamond.diamond_address, repository.save_count))

    callbacks = FacetCallbackManager()
    callbacks.register("OwnershipFacet", "grant_roles", grant_roles)
    callbacks.register("OwnershipFacet", "seed", seed)
    repository = InMemoryDeploymentRepository(
        "ExampleDiamond",
        make_config(
            {
                "facets": {
                    **BASE_CONFIG["facets"],
                    "OwnershipFacet": {"priority": 10, "versions": {"0": {"callbacks": ["grant_roles", "seed"]}}},
                }
            }
        ),
    )

    result = await make_orchestrator(repository, artifact_source, local_executor, callbacks).run()

    assert seen == [
        ("grant_roles", result.diamond_address, 1),
        ("seed", result.diamond_address, 1),
    ]


@pytest.mark.anyio
async def test_callback_failure_aborts_after_cut_is_persisted(artifact_source, local_executor):
    callbacks = FacetCallbackManager()

    def broken(diamond):
        raise RuntimeError("callback exploded")

    callbacks.register("OwnershipFacet", "broken", broken)
    repository = InMemoryDeploymentRepository(
        "ExampleDiamond",
        make_config(
            {
                "facets": {
                    **BASE_CONFIG["facets"],
                    "OwnershipFacet": {"priority": 10, "versions": {"0": {"callbacks": ["broken"]}}},
                }
            }
        ),
    )

    with pytest.raises(RuntimeError, match="callback exploded"):
        await make_orchestrator(repository, artifact_source, local_executor, callbacks).run()

    assert len(local_executor.cuts) == 1
    assert repository.save_count == 1
    assert repository.deployed_data.has_address


@pytest.mark.anyio
async def test_middlewares_wrap_every_phase_in_order(artifact_source, local_executor):
    events = []

    async def pre(phase, context):
        events.append(("pre", phase))

    async def post(phase, context):
        events.append(("post", phase))

    repository = InMemoryDeploymentRepository("ExampleDiamond", make_config())
    orchestrator = make_orchestrator(
        repository,
        artifact_source,
        local_executor,
        middlewares=[logging_middleware, hook_middleware(pre, post)],
    )

    await orchestrator.run()

    phases = [phase for kind, phase in events if kind == "pre"]
    assert phases == list(PipelinePhase)
    assert events[0] == ("pre", PipelinePhase.DEPLOY_DIAMOND)
    assert events[1] == ("post", PipelinePhase.DEPLOY_DIAMOND)

    events.clear()
    await make_orchestrator(
        repository, artifact_source, local_executor, middlewares=[hook_middleware(pre, post)]
    ).run()

    assert PipelinePhase.DEPLOY_DIAMOND not in [phase for _, phase in events]


@pytest.mark.anyio
async def test_failed_phase_leaves_persisted_state_untouched(artifact_source, local_executor):
    async def failing_cut(*args, **kwargs):
        raise RuntimeError("node unavailable")

    local_executor.diamond_cut = failing_cut
    repository = InMemoryDeploymentRepository("ExampleDiamond", make_config())

    with pytest.raises(RuntimeError):
        await make_orchestrator(repository, artifact_source, local_executor).run()

    assert repository.save_count == 0
    assert not repository.deployed_data.has_address


@pytest.mark.anyio
async def test_failed_facet_initializer_keeps_the_committed_cut(artifact_source, local_executor):
    async def reverting_call(*args, **kwargs):
        raise RuntimeError("initializer reverted")

    local_executor.send_call = reverting_call
    config = make_config(
        {
            "facets": {
                **BASE_CONFIG["facets"],
                "TokenFacet": {"priority": 20, "versions": {"0": {"deployInit": "initToken"}}},
            }
        }
    )
    repository = InMemoryDeploymentRepository("ExampleDiamond", config)

    with pytest.raises(RuntimeError, match="initializer reverted"):
        await make_orchestrator(repository, artifact_source, local_executor).run()

    saved = repository.deployed_data
    assert len(local_executor.cuts) == 1
    assert repository.save_count == 1
    assert saved.diamond_address == local_executor.cuts[0]["diamond"]
    assert saved.deployed_facets["TokenFacet"].func_selectors == ["0xa9059cbb", "0x70a08231"]
    assert saved.deployed_facets["TokenFacet"].version == 0

    del local_executor.send_call
    deployments_before = len(local_executor.deployments)

    result = await make_orchestrator(repository, artifact_source, local_executor).run()

    assert result.mode is DeploymentMode.UPGRADE
    assert result.diamond_address == saved.diamond_address
    assert len(local_executor.deployments) == deployments_before
    assert len(local_executor.cuts) == 1


@pytest.mark.anyio
async def test_facet_without_live_selectors_is_redeployed_each_run(artifact_source, local_executor):
    artifact_source.selectors["LegacyOwnershipFacet"] = ["0x8da5cb5b"]
    config = make_config(
        {"facets": {**BASE_CONFIG["facets"], "LegacyOwnershipFacet": {"priority": 40}}}
    )
    repository = InMemoryDeploymentRepository("ExampleDiamond", config)

    await make_orchestrator(repository, artifact_source, local_executor).run()

    assert "LegacyOwnershipFacet" in local_executor.deployed_names()
    assert "LegacyOwnershipFacet" not in repository.deployed_data.deployed_facets
    assert repository.deployed_data.deployed_facets["OwnershipFacet"].func_selectors == ["0x8da5cb5b", "0xf2fde38b"]
    saves_before = repository.save_count

    result = await make_orchestrator(repository, artifact_source, local_executor).run()

    assert result.deployed_facets == ["LegacyOwnershipFacet"]
    assert result.cut_count == 0
    assert local_executor.deployed_names()[-1] == "LegacyOwnershipFacet"
    assert local_executor.deployed_names().count("LegacyOwnershipFacet") == 2
    assert len(local_executor.cuts) == 1
    assert repository.save_count == saves_before


@pytest.mark.anyio
async def test_file_backed_deployment_and_disk_callbacks(deployments_path, artifact_source, local_executor):
    config = {
        "protocolVersion": 0,
        "facets": {
            "OwnershipFacet": {"priority": 10, "versions": {"0": {"callbacks": ["mark_done"]}}},
        },
    }
    write_diamond_config(deployments_path, "ExampleDiamond", config)
    callbacks_dir = deployments_path / "ExampleDiamond" / "callbacks"
    callbacks_dir.mkdir()
    marker = deployments_path / "callback.marker"
    (callbacks_dir / "OwnershipFacet.py").write_text(
        "from pathlib import Path\n"
        "\n"
        "\n"
        "def mark_done(diamond):\n"
        f"    Path({str(marker)!r}).write_text(diamond.diamond_address)\n"
    )
    repository = FileDeploymentRepository("ExampleDiamond")

    orchestrator = DeploymentOrchestrator(
        Diamond(repository),
        LocalDeploymentStrategy(artifact_source, local_executor),
    )
    result = await orchestrator.run()

    assert marker.read_text() == result.diamond_address
    reloaded = FileDeploymentRepository("ExampleDiamond").load_deployed_diamond_data()
    assert reloaded.diamond_address == result.diamond_address
    assert reloaded.deployed_facets["OwnershipFacet"].func_selectors == ["0x8da5cb5b", "0xf2fde38b"]
