# minichain

A small, self-contained blockchain: blocks mined by proof of work, a Merkle
root over each block's transactions, ECDSA (P-256) wallets with Base58Check
addresses, an unspent-output (UTXO) index, and a simple TCP node that
exchanges blocks and transactions with other nodes.

The package also ships four step-by-step stages of the same design, from an
in-memory chain of hashed blocks up to persistent storage and transactions.

## Installation

```
pip install .
```

For running the test suite:

```
pip install ".[test]"
pytest
```

## The `minichain` command

Every command works on the node named by the `NODE_ID` environment variable.
A node keeps its chain in the SQLite file `blockchain_<NODE_ID>.db` and its
keys, as JSON, in `wallet_<NODE_ID>.dat`, both in the current directory.

```
export NODE_ID=3000
```

Available commands:

```
minichain createwallet
minichain listaddresses
minichain createblockchain -address ADDRESS
minichain getbalance -address ADDRESS
minichain send -from FROM -to TO -amount AMOUNT [-mine]
minichain printchain
minichain reindexutxo
minichain startnode [-miner ADDRESS]
```

- `createwallet` generates a key pair, stores it in the wallet file and prints
  its address.
- `listaddresses` prints every address in the wallet file.
- `createblockchain` mines the genesis block, sends its reward of 10 coins to
  `ADDRESS` and builds the unspent-output index. It refuses to overwrite an
  existing chain.
- `getbalance` sums the unspent outputs locked to `ADDRESS`.
- `send` moves `AMOUNT` coins from `FROM` (which must be in this node's
  wallet file) to `TO`, returning any change to `FROM`. With `-mine` the
  transaction is mined into a block on this node right away, together with a
  reward for the sender; otherwise it is sent to the central node at
  `localhost:3000`.
- `printchain` prints every block from the tip back to the genesis block,
  with its height, previous hash, whether its proof of work is valid, and its
  transactions.
- `reindexutxo` rebuilds the unspent-output index from the chain and prints
  how many transactions it holds.
- `startnode` listens on `localhost:<NODE_ID>`. With `-miner ADDRESS` the node
  mines pending transactions once at least two are waiting and pays the
  reward to `ADDRESS`.

Invalid addresses, missing chains and insufficient funds are reported as an
error and the command exits with status 1.

### A small network on one machine

```
# central node
export NODE_ID=3000
minichain createwallet
minichain createblockchain -address CENTRAL_ADDRESS
cp blockchain_3000.db blockchain_genesis.db

# a miner node starting from the same genesis block
export NODE_ID=3002
cp blockchain_genesis.db blockchain_3002.db
minichain createwallet
minichain startnode -miner MINER_ADDRESS
```

Start the central node with `NODE_ID=3000 minichain startnode`. A node that
is not the central node announces itself to it on start-up. Transactions
sent without `-mine` reach the central node, which passes them on to the
other nodes it knows; a miner node with two transactions waiting mines a
block and announces it to the nodes it knows.

### Limits of the node

- The list of known nodes and the pool of pending transactions live in
  memory only and are lost when the node stops.
- Messages are neither authenticated nor encrypted.
- A received block becomes the tip only if it is higher than the current tip;
  there is no other handling of competing chains.

## Using it as a library

```python
from minichain.wallet import Wallet
from minichain.blockchain import Blockchain
from minichain.utxo_set import UTXOSet, new_utxo_transaction
from minichain.transaction import new_coinbase_tx

alice = Wallet.generate()
bob = Wallet.generate()

with Blockchain.create(alice.address(), "demo", ".", 16) as chain:
    utxo = UTXOSet(chain)
    utxo.reindex()

    tx = new_utxo_transaction(alice, bob.address(), 4, utxo)
    block = chain.mine_block([new_coinbase_tx(alice.address(), ""), tx])
    utxo.update(block)

    for block in chain:
        print(block.height, block.hash.hex())
```

`Blockchain.open(node_id, directory)` opens an existing chain; both it and
`Blockchain.create` raise `BlockchainNotFoundError` or
`BlockchainExistsError` (subclasses of `BlockchainError`) as appropriate.

Smaller pieces are usable on their own: `minichain.base58`
(`base58_encode`, `base58_decode`), `minichain.merkle_tree` (`MerkleTree`,
`merkle_node`), `minichain.wallet` (`Wallet`, `validate_address`,
`hash_pub_key`, `verify_signature`), `minichain.proofofwork`
(`ProofOfWork`) and `minichain.storage` (`Store`, a bucketed key-value store
on SQLite).

## Tutorial stages

Each stage is a complete program of its own.

```
minichain-part1
minichain-part2
```

Stage one builds a chain of three blocks linked by SHA-256 hashes and prints
them. Stage two adds proof of work (24 target bits, so mining takes a while)
and prints whether each block's work is valid.

```
minichain-part3 addblock -data "Send 1 BTC to Ivan"
minichain-part3 printchain
```

Stage three keeps the chain in `blockchain.db` in the current directory and
creates the genesis block on first use.

```
minichain-part4 createblockchain -address Ivan
minichain-part4 getbalance -address Ivan
minichain-part4 send -from Ivan -to Pedro -amount 6
minichain-part4 printchain
```

Stage four adds transactions, where addresses are plain names and an output
belongs to whoever's name it carries.