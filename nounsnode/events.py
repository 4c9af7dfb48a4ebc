"""
Typed events.

Every log the feed produces is a RawLog: the chain envelope plus a loosely typed bag of args.
decode() turns it into one frozen dataclass per event name, so handlers never reach into
dicts by string key.  Args are cast by the dataclass annotations; anything that does not fit
raises DecodeError.
"""

import json
import dataclasses
from dataclasses import dataclass, field
from typing import List, Optional, Union, get_args, get_origin

from .errors import DecodeError
from .utils import camel_to_snake, is_address


class Address(str):
    pass


class HexStr(str):
    pass


@dataclass(frozen=True)
class LogMeta:
    block_number: int
    log_index: int
    tx_hash: str
    block_timestamp: int
    contract: str
    tx_from: Optional[str] = None
    transaction_index: int = 0

    @property
    def id(self):
        return f"{self.tx_hash}-{self.log_index}"

    @property
    def position(self):
        return (self.block_number, self.log_index)


@dataclass
class RawLog:
    block_number: int
    log_index: int
    tx_hash: str
    block_timestamp: int
    contract: str
    event_name: str
    args: dict = field(default_factory=dict)
    tx_from: Optional[str] = None
    transaction_index: int = 0
    signature: Optional[str] = None

    @property
    def position(self):
        return (self.block_number, self.log_index)

    @property
    def key(self):
        return f"{self.contract}:{self.event_name}"

    def meta(self):
        return LogMeta(block_number=int(self.block_number),
                       log_index=int(self.log_index),
                       tx_hash=self.tx_hash.lower() if self.tx_hash else self.tx_hash,
                       block_timestamp=int(self.block_timestamp or 0),
                       contract=self.contract,
                       tx_from=self.tx_from.lower() if self.tx_from else None,
                       transaction_index=int(self.transaction_index or 0))

    @classmethod
    def from_dict(cls, d):
        """
        Build from the inbound shape {blockNumber, logIndex, txHash, blockTimestamp, eventName, args},
        in either camelCase or snake_case.
        """
        d = {camel_to_snake(k): v for k, v in d.items()}
        try:
            return cls(block_number=int(d['block_number']),
                       log_index=int(d['log_index']),
                       tx_hash=d['tx_hash'],
                       block_timestamp=int(d.get('block_timestamp') or 0),
                       contract=d['contract'],
                       event_name=d['event_name'],
                       args=dict(d.get('args') or {}),
                       tx_from=d.get('tx_from'),
                       transaction_index=int(d.get('transaction_index') or 0),
                       signature=d.get('signature'))
        except (KeyError, TypeError, ValueError) as e:
            raise DecodeError(f"E120 - Malformed log envelope: {e}") from e


######################################################################
#
# Registry
#
######################################################################

EVENTS = {}

def event(*names):
    def wrap(cls):
        for name in names or (cls.__name__,):
            EVENTS.setdefault(name, []).append(cls)
        return cls
    return wrap


######################################################################
#
# NounsToken
#
######################################################################

@dataclass(frozen=True)
class Seed:
    background: int
    body: int
    accessory: int
    head: int
    glasses: int


@event()
@dataclass(frozen=True)
class NounCreated:
    log: LogMeta
    token_id: int
    seed: Seed


@event()
@dataclass(frozen=True)
class NounBurned:
    log: LogMeta
    token_id: int


@event()
@dataclass(frozen=True)
class Transfer:
    log: LogMeta
    from_address: Address
    to_address: Address
    token_id: int


@event()
@dataclass(frozen=True)
class DelegateChanged:
    log: LogMeta
    delegator: Address
    from_delegate: Address
    to_delegate: Address


@event()
@dataclass(frozen=True)
class DelegateVotesChanged:
    log: LogMeta
    delegate: Address
    previous_balance: int
    new_balance: int


######################################################################
#
# NounsAuctionHouse
#
######################################################################

@event()
@dataclass(frozen=True)
class AuctionCreated:
    log: LogMeta
    noun_id: int
    start_time: int
    end_time: int


@event()
@dataclass(frozen=True)
class AuctionBid:
    log: LogMeta
    noun_id: int
    sender: Address
    value: int
    extended: bool


@event()
@dataclass(frozen=True)
class AuctionBidWithClientId:
    log: LogMeta
    noun_id: int
    value: int
    client_id: int


@event()
@dataclass(frozen=True)
class AuctionExtended:
    log: LogMeta
    noun_id: int
    end_time: int


@event()
@dataclass(frozen=True)
class AuctionSettled:
    log: LogMeta
    noun_id: int
    winner: Address
    amount: int


@event()
@dataclass(frozen=True)
class AuctionSettledWithClientId:
    log: LogMeta
    noun_id: int
    client_id: int


######################################################################
#
# NounsDAO
#
######################################################################

@event()
@dataclass(frozen=True)
class ProposalCreated:
    log: LogMeta
    id: int
    proposer: Address
    targets: List[Address]
    values: List[int]
    signatures: List[str]
    calldatas: List[HexStr]
    start_block: int
    end_block: int
    description: str


# Two overloads share the name on chain; the first variant whose fields are all present wins.

@event('ProposalCreatedWithRequirements')
@dataclass(frozen=True)
class ProposalCreatedWithSigners:
    log: LogMeta
    id: int
    signers: List[Address]
    update_period_end_block: int
    proposal_threshold: int
    quorum_votes: int
    client_id: Optional[int] = None


@event('ProposalCreatedWithRequirements')
@dataclass(frozen=True)
class ProposalCreatedWithRequirements:
    log: LogMeta
    id: int
    proposer: Address
    targets: List[Address]
    values: List[int]
    signatures: List[str]
    calldatas: List[HexStr]
    start_block: int
    end_block: int
    proposal_threshold: int
    quorum_votes: int
    description: str


@event()
@dataclass(frozen=True)
class ProposalCreatedOnTimelockV1:
    log: LogMeta
    id: int


@event()
@dataclass(frozen=True)
class ProposalUpdated:
    log: LogMeta
    id: int
    proposer: Address
    targets: List[Address]
    values: List[int]
    signatures: List[str]
    calldatas: List[HexStr]
    description: str
    update_message: str


@event()
@dataclass(frozen=True)
class ProposalDescriptionUpdated:
    log: LogMeta
    id: int
    proposer: Address
    description: str
    update_message: str


@event()
@dataclass(frozen=True)
class ProposalTransactionsUpdated:
    log: LogMeta
    id: int
    proposer: Address
    targets: List[Address]
    values: List[int]
    signatures: List[str]
    calldatas: List[HexStr]
    update_message: str


@event()
@dataclass(frozen=True)
class ProposalCanceled:
    log: LogMeta
    id: int


@event()
@dataclass(frozen=True)
class ProposalQueued:
    log: LogMeta
    id: int
    eta: int


@event()
@dataclass(frozen=True)
class ProposalExecuted:
    log: LogMeta
    id: int


@event()
@dataclass(frozen=True)
class ProposalVetoed:
    log: LogMeta
    id: int


@event()
@dataclass(frozen=True)
class ProposalObjectionPeriodSet:
    log: LogMeta
    id: int
    objection_period_end_block: int


@event()
@dataclass(frozen=True)
class VoteCast:
    log: LogMeta
    voter: Address
    proposal_id: int
    support: int
    votes: int
    reason: str


@event()
@dataclass(frozen=True)
class VoteCastWithClientId:
    log: LogMeta
    voter: Address
    proposal_id: int
    client_id: int


@event()
@dataclass(frozen=True)
class RefundableVote:
    log: LogMeta
    voter: Address
    refund_amount: int
    refund_sent: bool


@event()
@dataclass(frozen=True)
class SignatureCancelled:
    log: LogMeta
    signer: Address
    sig: HexStr


######################################################################
#
# NounsDAOData
#
######################################################################

@event()
@dataclass(frozen=True)
class ProposalCandidateCreated:
    log: LogMeta
    msg_sender: Address
    targets: List[Address]
    values: List[int]
    signatures: List[str]
    calldatas: List[HexStr]
    description: str
    slug: str
    proposal_id_to_update: int
    encoded_proposal_hash: HexStr


@event()
@dataclass(frozen=True)
class ProposalCandidateUpdated(ProposalCandidateCreated):
    reason: str = ''


@event()
@dataclass(frozen=True)
class ProposalCandidateCanceled:
    log: LogMeta
    msg_sender: Address
    slug: str


@event()
@dataclass(frozen=True)
class SignatureAdded:
    log: LogMeta
    signer: Address
    sig: HexStr
    expiration_timestamp: int
    proposer: Address
    slug: str
    proposal_id_to_update: int
    encoded_prop_hash: HexStr
    sig_digest: HexStr
    reason: str


@event()
@dataclass(frozen=True)
class FeedbackSent:
    log: LogMeta
    msg_sender: Address
    proposal_id: int
    support: int
    reason: str


@event()
@dataclass(frozen=True)
class CandidateFeedbackSent:
    log: LogMeta
    msg_sender: Address
    proposer: Address
    slug: str
    support: int
    reason: str


@event()
@dataclass(frozen=True)
class ProposalComplianceSignaled:
    log: LogMeta
    proposal_id: int
    signal: int
    reason: str


@event()
@dataclass(frozen=True)
class DunaAdminMessagePosted:
    log: LogMeta
    message: str
    related_proposals: List[int]


@event()
@dataclass(frozen=True)
class VoterMessageToDunaAdminPosted(DunaAdminMessagePosted):
    pass


######################################################################
#
# Treasury timelocks, token buyer, payer & streams
#
######################################################################

@dataclass(frozen=True)
class TimelockTransaction:
    log: LogMeta
    timelock_tx_hash: HexStr
    target: Address
    value: int
    signature: str
    data: HexStr
    eta: int


@event()
@dataclass(frozen=True)
class QueueTransaction(TimelockTransaction):
    pass


@event()
@dataclass(frozen=True)
class ExecuteTransaction(TimelockTransaction):
    pass


@event()
@dataclass(frozen=True)
class CancelTransaction(TimelockTransaction):
    pass


@event()
@dataclass(frozen=True)
class ETHSent:
    log: LogMeta
    to_address: Address
    amount: int


@event()
@dataclass(frozen=True)
class ERC20Sent:
    log: LogMeta
    to_address: Address
    erc20_token: Address
    amount: int


@event()
@dataclass(frozen=True)
class SoldETH:
    log: LogMeta
    to_address: Address
    eth_out: int
    token_in: int


@event()
@dataclass(frozen=True)
class RegisteredDebt:
    log: LogMeta
    account: Address
    amount: int


@event()
@dataclass(frozen=True)
class PaidBackDebt:
    log: LogMeta
    account: Address
    amount: int
    remaining_debt: int


@event()
@dataclass(frozen=True)
class StreamCreated:
    log: LogMeta
    msg_sender: Address
    payer: Address
    recipient: Address
    token_amount: int
    token_address: Address
    start_time: int
    stop_time: int
    stream_address: Address


######################################################################
#
# ClientRewards
#
######################################################################

@event()
@dataclass(frozen=True)
class ClientRegistered:
    log: LogMeta
    client_id: int
    name: str
    description: str


@event()
@dataclass(frozen=True)
class ClientUpdated(ClientRegistered):
    pass


@event()
@dataclass(frozen=True)
class ClientApprovalSet:
    log: LogMeta
    client_id: int
    approved: bool


@event()
@dataclass(frozen=True)
class ClientRewarded:
    log: LogMeta
    client_id: int
    amount: int


@event()
@dataclass(frozen=True)
class ClientBalanceWithdrawal:
    log: LogMeta
    client_id: int
    amount: int
    to_address: Address


@event()
@dataclass(frozen=True)
class AuctionRewardsUpdated:
    log: LogMeta
    first_auction_id: int
    last_auction_id: int


@event()
@dataclass(frozen=True)
class ProposalRewardsUpdated:
    log: LogMeta
    first_proposal_id: int
    last_proposal_id: int
    first_auction_id_for_revenue: int
    last_auction_id_for_revenue: int
    auction_revenue: int
    reward_per_proposal: int
    reward_per_vote: int


######################################################################
#
# Admin & config events, any contract.  Audit trail only.
#
######################################################################

@dataclass(frozen=True)
class ConfigChanged:
    log: LogMeta
    event_name: str
    params: dict


######################################################################
#
# Casting
#
######################################################################

ALIASES = {
    'from': 'from_address',
    'to': 'to_address',
    'tx_hash': 'timelock_tx_hash',
    'erc20token': 'erc20_token',
}


def cast_bool(value):
    if isinstance(value, bool):
        return value
    if isinstance(value, int) and value in (0, 1):
        return bool(value)
    if isinstance(value, str) and value.strip().lower() in ('true', '1', 'false', '0'):
        return value.strip().lower() in ('true', '1')
    raise ValueError(f"not a bool: {value!r}")


def cast_int(value):
    if isinstance(value, bool):
        raise ValueError(f"not an int: {value!r}")
    if isinstance(value, str) and value.lower().startswith('0x'):
        return int(value, 16)
    return int(value)


def cast_hex(value):
    if isinstance(value, (bytes, bytearray)):
        return HexStr('0x' + bytes(value).hex())
    value = str(value).lower()
    if not value.startswith('0x'):
        value = '0x' + value
    return HexStr(value)


def cast_address(value):
    if not is_address(value):
        raise ValueError(f"not an address: {value!r}")
    return Address(value.lower())


def cast(tp, value):

    if get_origin(tp) is Union:
        if value is None or value == '':
            return None
        inner = [t for t in get_args(tp) if t is not type(None)][0]
        return cast(inner, value)

    if get_origin(tp) in (list, List):
        if isinstance(value, str):
            value = json.loads(value) if value.strip() else []
        if not isinstance(value, (list, tuple)):
            raise ValueError(f"not a list: {value!r}")
        (inner,) = get_args(tp)
        return [cast(inner, v) for v in value]

    if dataclasses.is_dataclass(tp):
        if isinstance(value, str):
            value = json.loads(value)
        names = [f.name for f in dataclasses.fields(tp)]
        if isinstance(value, dict):
            value = {camel_to_snake(k): v for k, v in value.items()}
            return tp(**{f.name: cast(f.type, value[f.name]) for f in dataclasses.fields(tp)})
        if isinstance(value, (list, tuple)) and len(value) == len(names):
            return tp(*[cast(f.type, v) for f, v in zip(dataclasses.fields(tp), value)])
        raise ValueError(f"cannot build {tp.__name__} from {value!r}")

    if tp is Address:
        return cast_address(value)
    if tp is HexStr:
        return cast_hex(value)
    if tp is bool:
        return cast_bool(value)
    if tp is int:
        return cast_int(value)
    if tp is str:
        return '' if value is None else str(value)

    return value


def json_safe(value):
    if isinstance(value, bool) or value is None:
        return value
    if isinstance(value, int):
        return str(value)
    if isinstance(value, (bytes, bytearray)):
        return '0x' + bytes(value).hex()
    if isinstance(value, (list, tuple)):
        return [json_safe(v) for v in value]
    if isinstance(value, dict):
        return {k: json_safe(v) for k, v in value.items()}
    return value


def normalize_args(args):
    out = {}
    for k, v in args.items():
        k = camel_to_snake(k)
        out[ALIASES.get(k, k)] = v
    return out


def build(cls, meta, args):

    kwargs = {'log': meta}

    for f in dataclasses.fields(cls):
        if f.name == 'log':
            continue
        if f.name not in args:
            if f.default is not dataclasses.MISSING:
                continue
            raise DecodeError(f"E121 - {cls.__name__} is missing arg '{f.name}'.")
        try:
            kwargs[f.name] = cast(f.type, args[f.name])
        except (ValueError, TypeError, KeyError, json.JSONDecodeError) as e:
            raise DecodeError(f"E122 - {cls.__name__}.{f.name}: {e}") from e

    return cls(**kwargs)


def required_fields(cls):
    return {f.name for f in dataclasses.fields(cls)
            if f.name != 'log' and f.default is dataclasses.MISSING}


def decode(raw, config_events=None):
    """
    RawLog -> typed event.

    config_events is a set of "Contract:Event" keys that decode as ConfigChanged.
    """

    try:
        meta = raw.meta()
    except (TypeError, ValueError, AttributeError) as e:
        raise DecodeError(f"E123 - Malformed log envelope: {e}") from e

    if config_events and raw.key in config_events:
        return ConfigChanged(log=meta, event_name=raw.event_name, params=json_safe(dict(raw.args)))

    candidates = EVENTS.get(raw.event_name)
    if not candidates:
        raise DecodeError(f"E124 - No event type for {raw.key}.")

    args = normalize_args(raw.args)

    for cls in candidates:
        if required_fields(cls) <= set(args):
            return build(cls, meta, args)

    # Surface the missing-field error of the most specific variant.
    return build(candidates[-1], meta, args)
