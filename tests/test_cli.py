import pytest

from minichain import cli
from minichain.blockchain import Blockchain, BlockchainError, BlockchainNotFoundError, db_file_path
from minichain.transaction import SUBSIDY
from minichain.utxo_set import UTXOSet
from minichain.wallet import validate_address
from minichain.wallets import wallet_file_path

NODE = "3000"


@pytest.fixture
def workdir(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("NODE_ID", NODE)
    return tmp_path


@pytest.fixture
def funded(workdir):
    first = cli.create_wallet(NODE)
    second = cli.create_wallet(NODE)
    cli.create_blockchain(first, NODE)
    return first, second


def test_main_without_arguments_prints_usage(workdir, capsys):
    assert cli.main([]) == 1
    assert "Usage:" in capsys.readouterr().out


def test_main_requires_node_id(tmp_path, monkeypatch, capsys):
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("NODE_ID", raising=False)
    assert cli.main(["createwallet"]) == 1
    assert "NODE_ID env. var is not set!" in capsys.readouterr().out


def test_main_unknown_command(workdir, capsys):
    assert cli.main(["frobnicate"]) == 1
    assert "Usage:" in capsys.readouterr().out


def test_main_getbalance_without_address(workdir):
    assert cli.main(["getbalance"]) == 1


def test_main_send_rejects_non_positive_amount(workdir):
    assert cli.main(["send", "-from", "a", "-to", "b", "-amount", "0"]) == 1


def test_main_createwallet(workdir, capsys):
    assert cli.main(["createwallet"]) == 0
    out = capsys.readouterr().out
    assert out.startswith("Your new address: ")
    address = out.split(": ", 1)[1].strip()
    assert validate_address(address)


def test_main_printchain_without_chain_fails(workdir):
    assert cli.main(["printchain"]) == 1


def test_create_wallet_persists(workdir):
    first = cli.create_wallet(NODE)
    second = cli.create_wallet(NODE)
    assert wallet_file_path(NODE).exists()
    assert sorted(cli.list_addresses(NODE)) == sorted([first, second])


def test_list_addresses_without_wallet_file(workdir):
    with pytest.raises(FileNotFoundError):
        cli.list_addresses(NODE)


def test_create_blockchain_rejects_invalid_address(workdir):
    with pytest.raises(ValueError):
        cli.create_blockchain("not-an-address", NODE)
    assert not db_file_path(NODE).exists()


def test_get_balance_without_chain(workdir):
    address = cli.create_wallet(NODE)
    with pytest.raises(BlockchainNotFoundError):
        cli.get_balance(address, NODE)


def test_genesis_reward(funded, capsys):
    first, second = funded
    assert cli.get_balance(first, NODE) == SUBSIDY
    assert cli.get_balance(second, NODE) == 0
    assert f"Balance of '{first}': {SUBSIDY}" in capsys.readouterr().out


def test_send_and_mine(funded):
    first, second = funded
    cli.send(first, second, 3, NODE, True)
    assert cli.get_balance(second, NODE) == 3
    assert cli.get_balance(first, NODE) + cli.get_balance(second, NODE) == 2 * SUBSIDY

    with Blockchain.open(NODE) as blockchain:
        assert blockchain.best_height() == 1
        stored = UTXOSet(blockchain).count_transactions()
    assert cli.reindex_utxo(NODE) == stored


def test_send_insufficient_funds(funded):
    first, second = funded
    with pytest.raises(BlockchainError):
        cli.send(first, second, SUBSIDY + 1, NODE, True)


def test_send_from_unknown_wallet(funded):
    first, second = funded
    with pytest.raises(KeyError):
        cli.send(second, first, 1, NODE, True)
    assert cli.get_balance(first, NODE) == SUBSIDY


def test_send_rejects_invalid_recipient(funded):
    first, _ = funded
    with pytest.raises(ValueError):
        cli.send(first, "bogus", 1, NODE, True)


def test_print_chain(funded, capsys):
    first, second = funded
    cli.send(first, second, 2, NODE, True)
    capsys.readouterr()
    cli.print_chain(NODE)
    out = capsys.readouterr().out
    assert out.count("PoW: true") == 2
    assert "Height: 1" in out
    assert "Height: 0" in out
    assert out.index("Height: 1") < out.index("Height: 0")


def test_reindex_after_genesis(funded, capsys):
    assert cli.reindex_utxo(NODE) == 1
    assert "Done! There are 1 transactions in the UTXO set." in capsys.readouterr().out


def test_start_node_rejects_bad_miner(workdir):
    with pytest.raises(ValueError):
        cli.start_node(NODE, "bad-miner")