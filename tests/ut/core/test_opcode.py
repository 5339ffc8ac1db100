import pytest

from parlor.core.models.frame import CLIENT_REQUESTS, Opcode


@pytest.mark.ut
def test_lookup():
    assert Opcode.lookup(0x13) is Opcode.LOGIN_REQUEST
    assert Opcode.lookup(0x00) is None
    assert Opcode.lookup(0xFF) is None


@pytest.mark.ut
def test_requests_and_server_originated_are_disjoint():
    for opcode in Opcode:
        if opcode is Opcode.HEARTBEAT:
            assert not opcode.is_request
            assert not opcode.is_server_originated
        else:
            assert opcode.is_request != opcode.is_server_originated


@pytest.mark.ut
def test_every_request_has_a_success_reply():
    for opcode in CLIENT_REQUESTS:
        assert opcode.success is not None
        assert opcode.success.is_server_originated


@pytest.mark.ut
def test_reply_opcodes():
    assert Opcode.LOGIN_REQUEST.success is Opcode.LOGIN_SUCCESS
    assert Opcode.LOGIN_REQUEST.failure is Opcode.LOGIN_FAILURE
    assert Opcode.END_SESSION_REQUEST.success is Opcode.END_SESSION_SUCCESS
    assert Opcode.END_SESSION_REQUEST.failure is None
    assert Opcode.HEARTBEAT.success is None
