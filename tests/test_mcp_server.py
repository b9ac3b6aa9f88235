"""Tests for the MCP tool functions."""

from unittest.mock import patch

import pytest

from tabsplit import mcp_server

from conftest import ALICE, BOB, CAROL


@pytest.fixture(autouse=True)
def patched_service(service):
    """Route every tool to the temporary service."""
    with patch.object(mcp_server, "_ensure_service", return_value=service):
        yield service


@pytest.fixture
def tab_id(patched_service):
    output = mcp_server.create_expense_tab(
        "group1", "Trip", [f"alice={ALICE}", f"bob={BOB}", f"carol={CAROL}"]
    )
    assert output.startswith("Created tab")
    return patched_service.list_tabs("group1")[0].id


def test_create_rejects_bad_participant():
    assert mcp_server.create_expense_tab("group1", "Trip", ["alice"]).startswith("Error")


def test_list_tabs(tab_id):
    output = mcp_server.list_expense_tabs("group1")

    assert tab_id in output
    assert "open" in output


def test_add_and_list_expenses(tab_id):
    added = mcp_server.add_expense("group1", tab_id, "alice", "30", "dinner")
    listed = mcp_server.list_expenses("group1", tab_id)

    assert "30.00 USDC" in added
    assert "dinner" in listed
    assert "Total: 30.00 USDC" in listed


def test_balances(tab_id):
    mcp_server.add_expense("group1", tab_id, "alice", "30", "dinner")

    output = mcp_server.get_balances("group1", tab_id)

    assert "alice: owed 20.00 USDC" in output
    assert "bob: owes -10.00 USDC" in output


def test_settle_and_cancel(tab_id):
    mcp_server.add_expense("group1", tab_id, "alice", "30", "dinner")

    settled = mcp_server.settle_expenses("group1", tab_id)
    cancelled = mcp_server.cancel_settlement("group1", tab_id)

    assert "10000000 atomic units" in settled
    assert "open again" in cancelled


def test_nothing_to_settle(tab_id):
    assert "nothing to do" in mcp_server.settle_expenses("group1", tab_id)


def test_errors_reported_as_text(tab_id):
    output = mcp_server.add_expense("group1", tab_id, "mallory", "10", "x")

    assert output.startswith("Error:")


def test_confirm_requires_rpc(tab_id):
    assert "RPC" in mcp_server.confirm_settlement_payment("carol", "0xabc")
