"""Network parameters.

Each preset is immutable and passed explicitly into the operations that
need it; nothing here is process-global.
"""

from dataclasses import dataclass
from typing import Optional

from p2sh_multisig.sighash import SIGHASH_ALL, SIGHASH_FORKID, SigHashScheme


@dataclass(frozen=True)
class NetworkParams:
    name: str
    p2pkh_version: int
    p2sh_version: int
    sighash_scheme: SigHashScheme
    fork_id: Optional[int] = None
    dust_limit: int = 546

    @property
    def default_sighash_flag(self):
        if self.fork_id is not None:
            return SIGHASH_ALL | SIGHASH_FORKID
        return SIGHASH_ALL

    def with_sighash_flag(self, flag):
        """Add the FORKID bit to `flag` on networks that require it."""
        if self.fork_id is not None:
            return flag | SIGHASH_FORKID
        return flag


BITCOIN_MAINNET = NetworkParams("bitcoin", 0x00, 0x05, SigHashScheme.LEGACY)
BITCOIN_TESTNET = NetworkParams("bitcoin-testnet", 0x6f, 0xc4, SigHashScheme.LEGACY)
BITCOIN_REGTEST = NetworkParams("bitcoin-regtest", 0x6f, 0xc4, SigHashScheme.LEGACY)
BCH_MAINNET = NetworkParams("bch", 0x00, 0x05, SigHashScheme.VALUE_COMMITTING, fork_id=0)
BCH_TESTNET = NetworkParams("bch-testnet", 0x6f, 0xc4, SigHashScheme.VALUE_COMMITTING, fork_id=0)

NETWORKS = {n.name: n for n in (BITCOIN_MAINNET, BITCOIN_TESTNET, BITCOIN_REGTEST, BCH_MAINNET, BCH_TESTNET)}


def get_network(name):
    try:
        return NETWORKS[name]
    except KeyError:
        raise ValueError("unknown network %r (known: %s)" % (name, ", ".join(sorted(NETWORKS)))) from None
