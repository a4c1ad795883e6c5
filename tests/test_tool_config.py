"""Tests for the store-backed PyLTI1p3 tool configuration."""

import pytest

from conftest import CLIENT_ID, ISSUER
from lti_roster.lti.tool_config import StoreToolConf


@pytest.fixture
def tool_conf(seeded_store, private_key_pem):
    return StoreToolConf(seeded_store, private_key=private_key_pem)


class TestStoreToolConf:
    def test_one_client_per_issuer(self, tool_conf):
        assert tool_conf.check_iss_has_one_client(ISSUER) is True
        assert tool_conf.check_iss_has_many_clients(ISSUER) is False

    def test_find_registration_by_issuer(self, tool_conf, private_key_pem):
        registration = tool_conf.find_registration_by_issuer(ISSUER)

        assert registration.get_issuer() == ISSUER
        assert registration.get_client_id() == CLIENT_ID
        assert registration.get_auth_token_url() == "https://platform.example/token"
        assert registration.get_auth_login_url() == "https://platform.example/login"
        assert registration.get_key_set_url() == "https://platform.example/jwks"
        assert registration.get_tool_private_key() == private_key_pem

    def test_unknown_issuer(self, tool_conf):
        assert tool_conf.find_registration_by_issuer("https://unknown.example") is None

    def test_find_registration_by_params_checks_client(self, tool_conf):
        assert tool_conf.find_registration_by_params(ISSUER, CLIENT_ID) is not None
        assert tool_conf.find_registration_by_params(ISSUER, "other") is None

    def test_find_deployment(self, tool_conf):
        deployment = tool_conf.find_deployment(ISSUER, "dep-1")
        assert deployment.get_deployment_id() == "dep-1"
        assert tool_conf.find_deployment(ISSUER, "dep-2") is None

    def test_find_deployment_by_params(self, tool_conf):
        assert tool_conf.find_deployment_by_params(ISSUER, "dep-1", CLIENT_ID) is not None
        assert tool_conf.find_deployment_by_params(ISSUER, "dep-1", "other") is None

    def test_default_target_link_uri(self, tool_conf):
        assert tool_conf.default_target_link_uri(ISSUER) == "https://tool.example/launch"
        assert tool_conf.default_target_link_uri("https://unknown.example") is None
        assert tool_conf.default_target_link_uri(None) is None

    def test_reads_through_to_store(self, memory_store, registration):
        """Registrations added after startup are visible to the library."""
        tool_conf = StoreToolConf(memory_store)
        assert tool_conf.find_registration_by_issuer(ISSUER) is None
        memory_store.store_registration(registration)
        assert tool_conf.find_registration_by_issuer(ISSUER) is not None

    def test_registration_signs_with_published_key_id(self, seeded_store):
        tool_conf = StoreToolConf(seeded_store, key_id="test-key")
        assert tool_conf.find_registration_by_issuer(ISSUER).get_kid() == "test-key"

    def test_registration_without_key_id(self, tool_conf):
        assert tool_conf.find_registration_by_issuer(ISSUER).get_kid() is None
