import os
from copy import deepcopy
from pathlib import Path

import yaml
from dotenv import load_dotenv

from .logsetup import get_logger
from .utils import secret_text

load_dotenv()

glogr = get_logger('config')

######################################################################
#
# Mainnet deployment.  A YAML file can replace any of it:
#
#   deployments:
#     main:
#       chain_id: 1
#       contracts:
#         NounsToken: {address: '0x...', start_block: 12985438}
#
######################################################################

MAINNET = {
    'chain_id': 1,
    'contracts': {
        'NounsToken':        {'address': '0x9C8fF314C9Bc7F6e59A9d9225Fb22946427eDC03', 'start_block': 12985438},
        'NounsAuctionHouse': {'address': '0x830BD73E4184ceF73443C15111a1DF14e495C706', 'start_block': 12985453},
        'NounsDescriptorV3': {'address': '0x33a9c445fb4fb21f2c030a6b2d3e2f12d017bfac', 'start_block': 20059934},
        'NounsDAO':          {'address': '0x6f3E6272A167e8AcCb32072d08E0957F9c79223d', 'start_block': 17990266},
        'NounsDAOData':      {'address': '0xf790A5f59678dd733fb3De93493A91f472ca1365', 'start_block': 17990266},
        'TreasuryV2':        {'address': '0xb1a32FC9F9D8b2cf86C068Cae13108809547ef71', 'start_block': 17990266},
        'TreasuryV1':        {'address': '0x0BC3807Ec262cB779b38D65b38158acC3bfedE10', 'start_block': 12985452},
        'ClientRewards':     {'address': '0x883860178F95d0C82413eDc1D6De530cB4771d55', 'start_block': 20650531},
        'TokenBuyer':        {'address': '0x4f2acdc74f6941390d9b1804fabc3e780388cfe5', 'start_block': 15816284},
        'Payer':             {'address': '0xd97Bcd9f47cEe35c0a9ec1dc40C1269afc9E8E1D', 'start_block': 15816284},
        'StreamFactory':     {'address': '0x0fd206FC7A7dBcD5661157eDCb1FFDD0D02A61ff', 'start_block': 15816284},
    },
}

CONTRACT_DEPLOYMENT = os.getenv('CONTRACT_DEPLOYMENT', 'main')

GIT_COMMIT_SHA = os.getenv('GIT_COMMIT_SHA', 'n/a')

DATABASE_URL = os.getenv('DATABASE_URL', 'sqlite:///nouns.db')

NOUNSNODE_DATA_PATH = Path(os.getenv('NOUNSNODE_DATA_PATH', './data'))

ETHERSCAN_API_KEY = os.getenv('ETHERSCAN_API_KEY', '')

CALL_TIMEOUT = float(os.getenv('NOUNSNODE_CALL_TIMEOUT', '3'))


def node_url(env_var):
    """
    Either the full URL in plain text, or the base URL with the provider key kept in its
    own secret.
    """

    url = os.getenv(env_var, None)
    if not url:
        return None

    if 'alchemy.com' in url:
        url = url + os.getenv('ALCHEMY_API_KEY', '')
        glogr.info(f"Using alchemy for {env_var}: {secret_text(url, 6)}")

    if 'quiknode.pro' in url:
        url = url + os.getenv('QUICKNODE_API_KEY', '')
        glogr.info(f"Using quiknode.pro for {env_var}: {secret_text(url, 6)}")

    return url


ARCHIVE_NODE_HTTP_URL = node_url('NOUNSNODE_ARCHIVE_NODE_HTTP')
REALTIME_NODE_WS_URL = node_url('NOUNSNODE_REALTIME_NODE_WS')


def load_deployment(path=None, name=CONTRACT_DEPLOYMENT):
    """
    The deployment to index: mainnet, overlaid with the YAML file when there is one.
    """

    deployment = deepcopy(MAINNET)

    path = path or os.getenv('NOUNSNODE_CONFIG_FILE')
    if not path:
        return deployment

    try:
        with open(Path(path), 'r') as f:
            config = yaml.safe_load(f) or {}
    except OSError as e:
        glogr.info(f"No config file at {path} ({e}), using mainnet defaults.")
        return deployment

    override = (config.get('deployments') or {}).get(name)
    if override is None:
        raise ValueError(f"E140 - Deployment '{name}' not found in {path}.")

    deployment['chain_id'] = int(override.get('chain_id', deployment['chain_id']))

    for contract, spec in (override.get('contracts') or {}).items():
        merged = dict(deployment['contracts'].get(contract, {}))
        merged.update(spec or {})
        if 'address' not in merged:
            raise ValueError(f"E141 - {contract} has no address in deployment '{name}'.")
        merged['start_block'] = int(merged.get('start_block', 0))
        deployment['contracts'][contract] = merged

    return deployment


def public_deployment(deployment):
    return {'chain_id': deployment['chain_id'],
            'contracts': {name: {'address': spec['address'].lower(), 'start_block': spec['start_block']}
                          for name, spec in deployment['contracts'].items()}}
