"""Command line interface for the node: wallets, chain, balances and transfers."""

from __future__ import annotations

import argparse
import os
import sys
from typing import Callable, Optional, Sequence

from minichain.blockchain import Blockchain, BlockchainError
from minichain.proofofwork import ProofOfWork
from minichain.server import CENTRAL_NODE, send_tx, start_server
from minichain.transaction import new_coinbase_tx
from minichain.utxo_set import UTXOSet, new_utxo_transaction
from minichain.wallet import pub_key_hash_from_address, validate_address
from minichain.wallets import Wallets

USAGE = "\n".join(
    [
        "Usage:",
        "  createblockchain -address ADDRESS - Create a blockchain and send genesis block reward to ADDRESS",
        "  createwallet - Generates a new key-pair and saves it into the wallet file",
        "  getbalance -address ADDRESS - Get balance of ADDRESS",
        "  listaddresses - Lists all addresses from the wallet file",
        "  printchain - Print all the blocks of the blockchain",
        "  reindexutxo - Rebuilds the UTXO set",
        "  send -from FROM -to TO -amount AMOUNT -mine - Send AMOUNT of coins from FROM address to TO. "
        "Mine on the same node, when -mine is set.",
        "  startnode -miner ADDRESS - Start a node with ID specified in NODE_ID env. var. -miner enables mining",
    ]
)


def _require_address(address: str, message: str) -> None:
    if not validate_address(address):
        raise ValueError(message)


def create_blockchain(address: str, node_id: str) -> None:
    """Create the node's chain with the genesis reward paid to ``address``."""
    _require_address(address, "address is not valid")
    with Blockchain.create(address, node_id) as blockchain:
        UTXOSet(blockchain).reindex()
    print("Done!")


def create_wallet(node_id: str) -> str:
    """Add a new wallet to the node's wallet file and return its address."""
    try:
        wallets = Wallets.load(node_id)
    except FileNotFoundError:
        wallets = Wallets()
    address = wallets.create_wallet()
    wallets.save(node_id)
    print(f"Your new address: {address}")
    return address


def get_balance(address: str, node_id: str) -> int:
    """Sum of the unspent outputs locked to ``address``."""
    _require_address(address, "address is not valid")
    with Blockchain.open(node_id) as blockchain:
        pub_key_hash = pub_key_hash_from_address(address)
        balance = sum(output.value for output in UTXOSet(blockchain).find_utxo(pub_key_hash))
    print(f"Balance of '{address}': {balance}")
    return balance


def list_addresses(node_id: str) -> list[str]:
    """Addresses stored in the node's wallet file."""
    addresses = Wallets.load(node_id).addresses()
    for address in addresses:
        print(address)
    return addresses


def print_chain(node_id: str) -> None:
    """Print every block from the tip back to the genesis block."""
    with Blockchain.open(node_id) as blockchain:
        for block in blockchain:
            print(f"============ Block {block.hash.hex()} ============")
            print(f"Height: {block.height}")
            print(f"Prev. block: {block.prev_block_hash.hex()}")
            valid = ProofOfWork(block, blockchain.target_bits).validate()
            print(f"PoW: {str(valid).lower()}\n")
            for tx in block.transactions:
                print(tx)
            print("\n")


def reindex_utxo(node_id: str) -> int:
    """Rebuild the UTXO set and return how many transactions it holds."""
    with Blockchain.open(node_id) as blockchain:
        utxo_set = UTXOSet(blockchain)
        utxo_set.reindex()
        count = utxo_set.count_transactions()
    print(f"Done! There are {count} transactions in the UTXO set.")
    return count


def send(sender: str, to: str, amount: int, node_id: str, mine_now: bool = False) -> None:
    """Send ``amount`` from ``sender`` to ``to``, mining locally or relaying to the central node."""
    _require_address(sender, "sender address is not valid")
    _require_address(to, "recipient address is not valid")

    with Blockchain.open(node_id) as blockchain:
        utxo_set = UTXOSet(blockchain)
        wallet = Wallets.load(node_id).get_wallet(sender)
        tx = new_utxo_transaction(wallet, to, amount, utxo_set)

        if mine_now:
            coinbase = new_coinbase_tx(sender, "")
            block = blockchain.mine_block([coinbase, tx])
            utxo_set.update(block)
        elif not send_tx(CENTRAL_NODE, tx, f"localhost:{node_id}"):
            print(f"{CENTRAL_NODE} is not available")

    print("Success!")


def start_node(node_id: str, miner_address: str = "") -> None:
    """Start serving the node, mining to ``miner_address`` when it is given."""
    print(f"Starting node {node_id}")
    if miner_address:
        _require_address(miner_address, "wrong miner address")
        print(f"Mining is on. Address to receive rewards: {miner_address}")
    start_server(node_id, miner_address)


def _parser(command: str, configure: Optional[Callable[[argparse.ArgumentParser], None]] = None):
    parser = argparse.ArgumentParser(prog=command)
    if configure is not None:
        configure(parser)
    return parser


def _parsers() -> dict[str, argparse.ArgumentParser]:
    def address(help_text: str) -> Callable[[argparse.ArgumentParser], None]:
        def configure(parser: argparse.ArgumentParser) -> None:
            parser.add_argument("-address", "--address", dest="address", default="", help=help_text)

        return configure

    def send_options(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("-from", "--from", dest="sender", default="", help="Source wallet address")
        parser.add_argument("-to", "--to", dest="to", default="", help="Destination wallet address")
        parser.add_argument("-amount", "--amount", dest="amount", type=int, default=0, help="Amount to send")
        parser.add_argument(
            "-mine", "--mine", dest="mine", action="store_true",
            help="Mine immediately on the same node",
        )

    def node_options(parser: argparse.ArgumentParser) -> None:
        parser.add_argument(
            "-miner", "--miner", dest="miner", default="",
            help="Enable mining mode and send reward to ADDRESS",
        )

    return {
        "getbalance": _parser("getbalance", address("The address to get balance for")),
        "createblockchain": _parser(
            "createblockchain", address("The address to send genesis block reward to")
        ),
        "createwallet": _parser("createwallet"),
        "listaddresses": _parser("listaddresses"),
        "printchain": _parser("printchain"),
        "reindexutxo": _parser("reindexutxo"),
        "send": _parser("send", send_options),
        "startnode": _parser("startnode", node_options),
    }


def _dispatch(command: str, options: argparse.Namespace, node_id: str,
              parser: argparse.ArgumentParser) -> int:
    if command == "getbalance":
        if not options.address:
            parser.print_usage()
            return 1
        get_balance(options.address, node_id)
    elif command == "createblockchain":
        if not options.address:
            parser.print_usage()
            return 1
        create_blockchain(options.address, node_id)
    elif command == "createwallet":
        create_wallet(node_id)
    elif command == "listaddresses":
        list_addresses(node_id)
    elif command == "printchain":
        print_chain(node_id)
    elif command == "reindexutxo":
        reindex_utxo(node_id)
    elif command == "send":
        if not options.sender or not options.to or options.amount <= 0:
            parser.print_usage()
            return 1
        send(options.sender, options.to, options.amount, node_id, options.mine)
    elif command == "startnode":
        start_node(node_id, options.miner)
    return 0


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Parse the command line, run the command and return an exit status."""
    args = list(sys.argv[1:] if argv is None else argv)
    if not args:
        print(USAGE)
        return 1

    node_id = os.environ.get("NODE_ID", "")
    if not node_id:
        print("NODE_ID env. var is not set!")
        return 1

    command, rest = args[0], args[1:]
    parser = _parsers().get(command)
    if parser is None:
        print(USAGE)
        return 1

    try:
        options = parser.parse_args(rest)
    except SystemExit as exc:
        return exc.code if isinstance(exc.code, int) else 1

    try:
        return _dispatch(command, options, node_id, parser)
    except (BlockchainError, ValueError, KeyError, OSError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())