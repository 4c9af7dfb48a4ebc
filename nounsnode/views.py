"""
Read-side projections over the store.  Nothing here is persisted; each view is a query over
whatever the lanes have written so far.
"""

from .lifecycle import ACTIVE_STATUSES


def placeholders(values):
    return ', '.join(['%s'] * len(values))


def active_proposals(store, statuses=ACTIVE_STATUSES):
    return store.query(f"SELECT * FROM proposals WHERE status IN ({placeholders(statuses)}) ORDER BY id DESC",
                       tuple(statuses))


def top_delegates(store, limit=100, offset=0):
    """Voters holding votes, most votes first."""
    return store.query("SELECT * FROM voters WHERE delegated_votes > 0 "
                       "ORDER BY delegated_votes DESC, address LIMIT %s OFFSET %s", (limit, offset))


def auction_history(store, limit=50, offset=0):
    """
    Settled and running auctions, newest first, with the noun's traits and who settled it.
    """

    return store.query("SELECT a.noun_id, a.start_time, a.end_time, a.winner, a.amount, a.settled, a.client_id, "
                       "a.settler_address, a.settled_timestamp, a.winning_bid_id, "
                       "n.background, n.body, n.accessory, n.head, n.glasses, n.owner, n.burned, "
                       "n.settled_by_address, n.settled_by_ens, n.winner_ens "
                       "FROM auctions a LEFT JOIN nouns n ON n.id = a.noun_id "
                       "ORDER BY a.noun_id DESC LIMIT %s OFFSET %s", (limit, offset))


def noun_with_winning_bid(store, noun_id):
    """
    The noun plus its winning bid found two ways: the explicit winning_bid_id recorded at
    settlement, and the older match on (bidder, amount).  They differ only when a bidder
    placed the same amount twice.
    """

    noun = store.get('nouns', noun_id)
    if noun is None:
        return None

    auction = store.get('auctions', noun_id)

    matched = store.query_one("SELECT b.id FROM auctions a JOIN auction_bids b "
                              "ON b.noun_id = a.noun_id AND b.bidder = a.winner AND b.amount = a.amount "
                              "WHERE a.noun_id = %s ORDER BY b.block_number, b.log_index LIMIT 1", (noun_id,))

    return {**noun,
            'winning_bid_id': auction['winning_bid_id'] if auction else None,
            'matched_bid_id': matched['id'] if matched else None}


def client_auction_wins(store, client_id):
    return store.query("SELECT a.noun_id, a.winner, a.amount, a.settled_timestamp, b.id AS bid_id, b.tx_hash "
                       "FROM auction_bids b JOIN auctions a ON a.winning_bid_id = b.id "
                       "WHERE b.client_id = %s ORDER BY a.noun_id DESC", (client_id,))


def client_proposals(store, client_id):
    return store.query("SELECT id, proposer, title, status, created_timestamp, tx_hash FROM proposals "
                       "WHERE client_id = %s ORDER BY id DESC", (client_id,))


def client_votes(store, client_id):
    return store.query("SELECT v.id, v.voter, v.proposal_id, v.support, v.votes, v.reason, v.block_timestamp, "
                       "v.tx_hash, p.title FROM votes v LEFT JOIN proposals p ON p.id = v.proposal_id "
                       "WHERE v.client_id = %s ORDER BY v.block_number DESC, v.log_index DESC", (client_id,))


def proposal_versions_of(store, proposal_id):
    return store.query("SELECT * FROM proposal_versions WHERE proposal_id = %s ORDER BY version_number",
                       (proposal_id,))


def candidate_versions_of(store, candidate_id):
    return store.query("SELECT * FROM candidate_versions WHERE candidate_id = %s ORDER BY version_number",
                       (candidate_id,))
