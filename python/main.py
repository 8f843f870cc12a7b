#!/usr/bin/env python3

import logging
import os

from p2sh_multisig import (MultisigSpend, LockingAddress, PrivateKey, Signer, UnspentOutput,
                           get_network)
from p2sh_multisig.errors import InsufficientSignatures

logger = logging.getLogger("p2sh_multisig.demo")

# given transaction details
PRIVATE_KEYS = [
    "39dc0a9f0b185a2ee56349691f34716e6e0cda06a7f9707742ac113c4e2317bf",
    "5077ccd9c558b7d04a81920d38aa11b4a9f9de3b23fab45c3ef28039920fdd6d"
]

THRESHOLD = 2

OUTPOINT_HASH = "0000000000000000000000000000000000000000000000000000000000000000"
OUTPOINT_INDEX = 0

UTXO_VALUE = 100000  # 0.001 BTC in satoshis
FEE = 1000

NETWORK = "bch-testnet"


def load_private_keys():
    # comma separated hex keys override the defaults above
    raw = os.environ.get("MULTISIG_PRIVATE_KEYS")
    keys = raw.split(",") if raw else PRIVATE_KEYS
    return [PrivateKey.from_hex(k.strip()) for k in keys]


def destination_script(keys, network):
    raw = os.environ.get("MULTISIG_OUTPUT")
    if raw:
        return bytes.fromhex(raw)
    return LockingAddress.for_public_key(keys[0].public_key, network).to_locking_script()


def main():
    logging.basicConfig(level=os.environ.get("MULTISIG_LOG_LEVEL", "INFO"),
                        format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    network = get_network(os.environ.get("MULTISIG_NETWORK", NETWORK))
    keys = load_private_keys()

    # address derivation; the redeem script must be kept to spend later
    spend = MultisigSpend.from_keys([k.public_key for k in keys], THRESHOLD, network)
    logger.info("redeem script: %s", spend.redeem_script.hex())
    logger.info("locking address payload: %s", spend.address.payload.hex())

    utxo = UnspentOutput.from_hex(OUTPOINT_HASH, OUTPOINT_INDEX, UTXO_VALUE,
                                  spend.redeem_script.locking_script().hex())
    tx = spend.build([utxo], [(destination_script(keys, network), UTXO_VALUE - FEE)], fee=FEE)

    # signing, one signer per key
    signers = [Signer(k, spend.redeem_script) for k in keys]
    collectors = spend.collectors(tx, [utxo])
    spend.collect(collectors, signers[:THRESHOLD - 1])
    try:
        spend.finalize(collectors)
    except InsufficientSignatures as e:
        logger.info("as expected before quorum: %s", e)

    spend.collect(collectors, signers[THRESHOLD - 1:])
    signed = spend.finalize(collectors)

    with open("out.txt", "w") as f:
        f.write(signed.hex())
    logger.info("txid %s written to out.txt", signed.txid)


if __name__ == "__main__":
    main()
