from eth_abi.abi import decode as decode_abi
from eth_abi.exceptions import DecodingError
from eth_utils import keccak

from .errors import DecodeError

DYNAMIC_TYPES = ('string', 'bytes')


def to_bytes(value):
    if isinstance(value, (bytes, bytearray)):
        return bytes(value)
    if isinstance(value, str):
        return bytes.fromhex(value[2:] if value.startswith('0x') else value)
    raise DecodeError(f"E110 - Cannot interpret {type(value).__name__} as bytes.")


def to_hex(value):
    return '0x' + to_bytes(value).hex()


def split_params(params_str):
    """Split on top-level commas only; tuple components stay together."""

    out = []
    depth = 0
    current = ''

    for ch in params_str:
        if ch == '(':
            depth += 1
        elif ch == ')':
            depth -= 1
        if ch == ',' and depth == 0:
            out.append(current.strip())
            current = ''
        else:
            current += ch

    if current.strip():
        out.append(current.strip())

    return out


def parse_param(param_str):

    if param_str.startswith('('):
        depth = 0
        for end, ch in enumerate(param_str):
            if ch == '(':
                depth += 1
            elif ch == ')':
                depth -= 1
                if depth == 0:
                    break
        components = [parse_param(p) for p in split_params(param_str[1:end])]
        rest = param_str[end + 1:].split()
        suffix = ''
        if rest and rest[0].startswith('['):
            suffix = rest.pop(0)
        param = {'type': 'tuple' + suffix, 'components': components}
    else:
        rest = param_str.split()
        param = {'type': rest.pop(0)}

    param['indexed'] = 'indexed' in rest
    names = [r for r in rest if r != 'indexed']
    param['name'] = names[0] if names else ''

    return param


def canonical_type(param):
    if param['type'].startswith('tuple'):
        inner = ','.join(canonical_type(c) for c in param['components'])
        return f"({inner}){param['type'][len('tuple'):]}"
    return param['type']


def is_dynamic(param):
    t = param['type']
    return t in DYNAMIC_TYPES or t.endswith(']') or t.startswith('tuple')


class EventAbi:
    """
    An event fragment built from a human-readable, named signature, eg.

        AuctionBid(uint256 indexed nounId, address sender, uint256 value, bool extended)
    """

    def __init__(self, human):

        self.human = human

        name, params = human.split('(', 1)
        self.name = name.strip()
        self.inputs = [parse_param(p) for p in split_params(params.rsplit(')', 1)[0])]

        self.signature = f"{self.name}({','.join(canonical_type(i) for i in self.inputs)})"
        self.topic = '0x' + keccak(text=self.signature).hex()

        self.indexed = [i for i in self.inputs if i['indexed']]
        self.non_indexed = [i for i in self.inputs if not i['indexed']]

    @property
    def fields(self):
        return [i['name'] for i in self.inputs]

    def __repr__(self):
        return f"EventAbi({self.signature})"

    def normalize(self, param, value):

        if param['type'].startswith('tuple') and param['type'].endswith(']'):
            item = dict(param, type=param['type'][:param['type'].rindex('[')])
            return [self.normalize(item, v) for v in value]
        if param['type'].startswith('tuple'):
            return {c['name']: self.normalize(c, v) for c, v in zip(param['components'], value)}
        if isinstance(value, (list, tuple)):
            item = dict(param, type=param['type'][:param['type'].rindex('[')])
            return [self.normalize(item, v) for v in value]
        if isinstance(value, (bytes, bytearray)):
            return to_hex(value)
        if param['type'] == 'address':
            return value.lower()
        return value

    def decode(self, topics, data):
        """
        Decode a raw log into {argName: value}, indexed args from topics and the rest from data.
        """

        topics = [to_hex(t) for t in topics]

        if not topics or topics[0] != self.topic:
            raise DecodeError(f"E111 - Log topic {topics[:1]} does not match {self.signature}.")

        if len(topics) - 1 != len(self.indexed):
            raise DecodeError(f"E112 - {self.signature} expects {len(self.indexed)} indexed topics, got {len(topics) - 1}.")

        args = {}

        try:
            for param, topic in zip(self.indexed, topics[1:]):
                if is_dynamic(param):
                    # Only the hash of dynamic indexed values is on chain.
                    args[param['name']] = topic
                else:
                    value = decode_abi([canonical_type(param)], to_bytes(topic))[0]
                    args[param['name']] = self.normalize(param, value)

            values = decode_abi([canonical_type(p) for p in self.non_indexed], to_bytes(data))
            for param, value in zip(self.non_indexed, values):
                args[param['name']] = self.normalize(param, value)

        except (DecodingError, UnicodeDecodeError, ValueError, OverflowError) as e:
            raise DecodeError(f"E113 - Could not decode {self.signature}: {e}") from e

        return args


class AbiSet:
    """
    Event fragments per contract, looked up by canonical signature or by topic0.
    """

    def __init__(self, name, contract_events):
        self.name = name
        self.by_contract = {}

        for contract, humans in contract_events.items():
            frags = [EventAbi(h) for h in humans]
            self.by_contract[contract] = {frag.topic: frag for frag in frags}

    @property
    def contracts(self):
        return list(self.by_contract.keys())

    def events(self, contract):
        return list(self.by_contract[contract].values())

    def get_by_topic(self, contract, topic):
        try:
            return self.by_contract[contract][to_hex(topic)]
        except KeyError:
            raise DecodeError(f"E114 - Unknown topic {to_hex(topic)} for {contract}.")

    def get_by_signature(self, contract, signature):
        for frag in self.by_contract[contract].values():
            if signature in (frag.signature, frag.human):
                return frag
        raise DecodeError(f"E115 - Unknown signature {signature} for {contract}.")

    def event_names(self, contract):
        return {frag.name for frag in self.by_contract[contract].values()}
