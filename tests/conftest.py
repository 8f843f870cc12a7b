import pytest

from p2sh_multisig.keys import PrivateKey
from p2sh_multisig.network import BCH_TESTNET, BITCOIN_TESTNET
from p2sh_multisig.redeem_script import LockingAddress, build_redeem_script
from p2sh_multisig.transaction import UnspentOutput

# keys from the original 2-of-2 exercise
PRIVATE_KEYS = [
    "39dc0a9f0b185a2ee56349691f34716e6e0cda06a7f9707742ac113c4e2317bf",
    "5077ccd9c558b7d04a81920d38aa11b4a9f9de3b23fab45c3ef28039920fdd6d",
]
REDEEM_SCRIPT_HEX = (
    "5221032ff8c5df0bc00fe1ac2319c3b8070d6d1e04cfbf4fedda499ae7b775185ad53b"
    "21039bbc8d24f89e5bc44c5b0d1980d6658316a6b2440023117c3c03a4975b04dd5652ae"
)

FUNDING_TXID = "e6cae0e84b08e3c8a66b05a074641c45d7ffddb0079d411fffbb997d7bea51b5"


def make_keys(n, compressed=True):
    return [PrivateKey(bytes([i + 1]) * 32, compressed=compressed) for i in range(n)]


def make_utxo(redeem_script, value=100000, index=0, txid=FUNDING_TXID):
    return UnspentOutput.from_hex(txid, index, value, redeem_script.locking_script().hex())


def destination(network, seed=0x42):
    return LockingAddress.for_public_key(PrivateKey(bytes([seed]) * 32).public_key, network)


@pytest.fixture
def pair():
    return [PrivateKey.from_hex(k) for k in PRIVATE_KEYS]


@pytest.fixture
def five_keys():
    return make_keys(5)


@pytest.fixture(params=[BITCOIN_TESTNET, BCH_TESTNET], ids=["legacy", "value-committing"])
def network(request):
    return request.param


@pytest.fixture
def two_of_three():
    keys = make_keys(3)
    return keys, build_redeem_script([k.public_key for k in keys], 2)
