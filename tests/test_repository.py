import json

import pytest

from diamond_deployer.core.exceptions import DeploymentConfigError, DeploymentDataError
from diamond_deployer.domain.models.deployment import DeployedDiamondData, DeployedFacet
from diamond_deployer.domain.repositories.deployment_repository import (
    FileDeploymentRepository,
    build_deployment_id,
)

from conftest import write_diamond_config


def test_deployment_id_combines_name_network_and_chain():
    assert build_deployment_id("ExampleDiamond", "Sepolia", 11155111) == "examplediamond-sepolia-11155111"


def test_repository_defaults_come_from_settings(deployments_path):
    repository = FileDeploymentRepository("ExampleDiamond")

    assert repository.network_name == "hardhat"
    assert repository.chain_id == 31337
    assert repository.get_deployment_id() == "examplediamond-hardhat-31337"
    assert repository.deployed_data_file == (
        deployments_path / "ExampleDiamond" / "deployments" / "examplediamond-hardhat-31337.json"
    )


def test_missing_record_loads_empty_skeleton(deployments_path):
    data = FileDeploymentRepository("ExampleDiamond").load_deployed_diamond_data()

    assert not data.has_address
    assert data.deployed_facets == {}
    assert data.protocol_version == 0


def test_record_round_trips_with_wire_field_names(deployments_path):
    repository = FileDeploymentRepository("ExampleDiamond")
    data = DeployedDiamondData(
        diamond_address="0x" + "dd" * 20,
        deployer_address="0x" + "de" * 20,
        deployed_facets={
            "OwnershipFacet": DeployedFacet(
                address="0x" + "01" * 20,
                tx_hash="0xabc",
                version=2,
                func_selectors=["0x8da5cb5b", "0xf2fde38b"],
            )
        },
        protocol_version=2,
    )

    repository.save_deployed_diamond_data(data)
    raw = json.loads(repository.deployed_data_file.read_text())
    reloaded = repository.load_deployed_diamond_data()

    assert raw["DiamondAddress"] == data.diamond_address
    assert raw["DeployedFacets"]["OwnershipFacet"]["funcSelectors"] == ["0x8da5cb5b", "0xf2fde38b"]
    assert raw["protocolVersion"] == 2
    assert reloaded == data


def test_disabled_writes_leave_no_file(deployments_path):
    repository = FileDeploymentRepository("ExampleDiamond", write_deployed_diamond_data=False)

    repository.save_deployed_diamond_data(DeployedDiamondData(diamond_address="0x" + "dd" * 20))

    assert not repository.deployed_data_file.exists()


def test_corrupt_record_raises(deployments_path):
    repository = FileDeploymentRepository("ExampleDiamond")
    repository.deployed_data_file.parent.mkdir(parents=True)
    repository.deployed_data_file.write_text("{not json")

    with pytest.raises(DeploymentDataError):
        repository.load_deployed_diamond_data()


def test_config_loads_with_versions(deployments_path):
    write_diamond_config(
        deployments_path,
        "ExampleDiamond",
        {
            "protocolVersion": 1,
            "protocolInitFacet": "InitFacet",
            "facets": {
                "InitFacet": {"priority": 5, "versions": {"0": {"deployInit": "initialize"}, "1": {}}},
                "OwnershipFacet": {"priority": 10},
            },
        },
    )

    config = FileDeploymentRepository("ExampleDiamond").load_deploy_config()

    assert config.protocol_init_facet == "InitFacet"
    assert config.facets["InitFacet"].target_version == 1
    assert config.facets["InitFacet"].version_spec(0).deploy_init == "initialize"
    assert config.facets["OwnershipFacet"].target_version == 0
    assert config.facets_by_priority() == ["InitFacet", "OwnershipFacet"]


def test_missing_config_raises(deployments_path):
    with pytest.raises(DeploymentConfigError):
        FileDeploymentRepository("ExampleDiamond").load_deploy_config()


def test_invalid_config_raises(deployments_path):
    write_diamond_config(deployments_path, "ExampleDiamond", {"facets": {"OwnershipFacet": {"priority": "high"}}})

    with pytest.raises(DeploymentConfigError):
        FileDeploymentRepository("ExampleDiamond").load_deploy_config()
