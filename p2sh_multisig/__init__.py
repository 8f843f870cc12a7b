"""Threshold (M-of-N) P2SH multisig: script derivation, signing and verification."""

from p2sh_multisig.assembler import ScriptSig, SignatureCollector, assemble_script_sig
from p2sh_multisig.builder import build_spend
from p2sh_multisig.context import SigningContext
from p2sh_multisig.keys import InMemoryKeyStore, KeyProvider, PrivateKey, PublicKey
from p2sh_multisig.network import (BCH_MAINNET, BCH_TESTNET, BITCOIN_MAINNET, BITCOIN_REGTEST,
                                   BITCOIN_TESTNET, NetworkParams, get_network)
from p2sh_multisig.redeem_script import (LockingAddress, RedeemScript, build_redeem_script,
                                         derive_address)
from p2sh_multisig.sighash import (SIGHASH_ALL, SIGHASH_ANYONECANPAY, SIGHASH_FORKID,
                                   SIGHASH_NONE, SIGHASH_SINGLE, SigHashScheme, signature_hash)
from p2sh_multisig.signer import PartialSignature, Signer
from p2sh_multisig.spend import Broadcaster, BroadcastResult, MultisigSpend, UtxoLocator
from p2sh_multisig.transaction import (OutPoint, SignedTransaction, Transaction, TxInput,
                                       TxOutput, UnspentOutput)
from p2sh_multisig.verifier import Reason, VerificationResult, verify_input, verify_transaction

__version__ = "0.1.0"
