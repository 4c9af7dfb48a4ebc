######################################################################
#
# Named, human-readable event signatures for every indexed contract.
# They are expanded into ABI fragments by abi.EventAbi.
#
######################################################################

OWNERSHIP_TRANSFERRED = 'OwnershipTransferred(address indexed previousOwner, address indexed newOwner)'
PAUSED = 'Paused(address account)'
UNPAUSED = 'Unpaused(address account)'
ADMIN_CHANGED = 'AdminChanged(address previousAdmin, address newAdmin)'
UPGRADED = 'Upgraded(address indexed implementation)'

# NounsToken

NOUN_CREATED = 'NounCreated(uint256 indexed tokenId, (uint48 background, uint48 body, uint48 accessory, uint48 head, uint48 glasses) seed)'
NOUN_BURNED = 'NounBurned(uint256 indexed tokenId)'
TRANSFER = 'Transfer(address indexed from, address indexed to, uint256 indexed tokenId)'
DELEGATE_CHANGED = 'DelegateChanged(address indexed delegator, address indexed fromDelegate, address indexed toDelegate)'
DELEGATE_VOTES_CHANGED = 'DelegateVotesChanged(address indexed delegate, uint256 previousBalance, uint256 newBalance)'

NOUNS_TOKEN = [
    NOUN_CREATED,
    NOUN_BURNED,
    TRANSFER,
    DELEGATE_CHANGED,
    DELEGATE_VOTES_CHANGED,
    'DescriptorUpdated(address descriptor)',
    'DescriptorLocked()',
    'MinterUpdated(address minter)',
    'MinterLocked()',
    'SeederUpdated(address seeder)',
    'SeederLocked()',
    'NoundersDAOUpdated(address noundersDAO)',
    OWNERSHIP_TRANSFERRED,
]

# NounsAuctionHouse

AUCTION_CREATED = 'AuctionCreated(uint256 indexed nounId, uint256 startTime, uint256 endTime)'
AUCTION_BID = 'AuctionBid(uint256 indexed nounId, address sender, uint256 value, bool extended)'
AUCTION_BID_WITH_CLIENT_ID = 'AuctionBidWithClientId(uint256 indexed nounId, uint256 value, uint32 indexed clientId)'
AUCTION_EXTENDED = 'AuctionExtended(uint256 indexed nounId, uint256 endTime)'
AUCTION_SETTLED = 'AuctionSettled(uint256 indexed nounId, address winner, uint256 amount)'
AUCTION_SETTLED_WITH_CLIENT_ID = 'AuctionSettledWithClientId(uint256 indexed nounId, uint32 indexed clientId)'

NOUNS_AUCTION_HOUSE = [
    AUCTION_CREATED,
    AUCTION_BID,
    AUCTION_BID_WITH_CLIENT_ID,
    AUCTION_EXTENDED,
    AUCTION_SETTLED,
    AUCTION_SETTLED_WITH_CLIENT_ID,
    'AuctionReservePriceUpdated(uint256 reservePrice)',
    'AuctionMinBidIncrementPercentageUpdated(uint256 minBidIncrementPercentage)',
    'AuctionTimeBufferUpdated(uint256 timeBuffer)',
    'SanctionsOracleSet(address newSanctionsOracle)',
    PAUSED,
    UNPAUSED,
    OWNERSHIP_TRANSFERRED,
]

# NounsDescriptorV3

NOUNS_DESCRIPTOR = [
    'ArtUpdated(address art)',
    'BaseURIUpdated(string baseURI)',
    'DataURIToggled(bool enabled)',
    'PartsLocked()',
    'RendererUpdated(address renderer)',
    OWNERSHIP_TRANSFERRED,
]

# NounsDAO (logic V3/V4)

PROPOSAL_CREATED = 'ProposalCreated(uint256 id, address proposer, address[] targets, uint256[] values, string[] signatures, bytes[] calldatas, uint256 startBlock, uint256 endBlock, string description)'
PROPOSAL_CREATED_WITH_REQUIREMENTS_1 = 'ProposalCreatedWithRequirements(uint256 id, address proposer, address[] targets, uint256[] values, string[] signatures, bytes[] calldatas, uint256 startBlock, uint256 endBlock, uint256 proposalThreshold, uint256 quorumVotes, string description)'
PROPOSAL_CREATED_WITH_REQUIREMENTS_2 = 'ProposalCreatedWithRequirements(uint256 id, address[] signers, uint256 updatePeriodEndBlock, uint256 proposalThreshold, uint256 quorumVotes, uint32 indexed clientId)'
PROPOSAL_CREATED_ON_TIMELOCK_V1 = 'ProposalCreatedOnTimelockV1(uint256 id)'
PROPOSAL_UPDATED = 'ProposalUpdated(uint256 indexed id, address indexed proposer, address[] targets, uint256[] values, string[] signatures, bytes[] calldatas, string description, string updateMessage)'
PROPOSAL_DESCRIPTION_UPDATED = 'ProposalDescriptionUpdated(uint256 indexed id, address indexed proposer, string description, string updateMessage)'
PROPOSAL_TRANSACTIONS_UPDATED = 'ProposalTransactionsUpdated(uint256 indexed id, address indexed proposer, address[] targets, uint256[] values, string[] signatures, bytes[] calldatas, string updateMessage)'
PROPOSAL_CANCELED = 'ProposalCanceled(uint256 id)'
PROPOSAL_QUEUED = 'ProposalQueued(uint256 id, uint256 eta)'
PROPOSAL_EXECUTED = 'ProposalExecuted(uint256 id)'
PROPOSAL_VETOED = 'ProposalVetoed(uint256 id)'
PROPOSAL_OBJECTION_PERIOD_SET = 'ProposalObjectionPeriodSet(uint256 indexed id, uint256 objectionPeriodEndBlock)'
VOTE_CAST = 'VoteCast(address indexed voter, uint256 proposalId, uint8 support, uint256 votes, string reason)'
VOTE_CAST_WITH_CLIENT_ID = 'VoteCastWithClientId(address indexed voter, uint256 indexed proposalId, uint32 indexed clientId)'
REFUNDABLE_VOTE = 'RefundableVote(address indexed voter, uint256 refundAmount, bool refundSent)'
SIGNATURE_CANCELLED = 'SignatureCancelled(address indexed signer, bytes sig)'

NOUNS_DAO = [
    PROPOSAL_CREATED,
    PROPOSAL_CREATED_WITH_REQUIREMENTS_1,
    PROPOSAL_CREATED_WITH_REQUIREMENTS_2,
    PROPOSAL_CREATED_ON_TIMELOCK_V1,
    PROPOSAL_UPDATED,
    PROPOSAL_DESCRIPTION_UPDATED,
    PROPOSAL_TRANSACTIONS_UPDATED,
    PROPOSAL_CANCELED,
    PROPOSAL_QUEUED,
    PROPOSAL_EXECUTED,
    PROPOSAL_VETOED,
    PROPOSAL_OBJECTION_PERIOD_SET,
    VOTE_CAST,
    VOTE_CAST_WITH_CLIENT_ID,
    REFUNDABLE_VOTE,
    SIGNATURE_CANCELLED,
    'NewAdmin(address oldAdmin, address newAdmin)',
    'NewPendingAdmin(address oldPendingAdmin, address newPendingAdmin)',
    'NewVetoer(address oldVetoer, address newVetoer)',
    'NewPendingVetoer(address oldPendingVetoer, address newPendingVetoer)',
    'VotingDelaySet(uint256 oldVotingDelay, uint256 newVotingDelay)',
    'VotingPeriodSet(uint256 oldVotingPeriod, uint256 newVotingPeriod)',
    'ProposalThresholdBPSSet(uint256 oldProposalThresholdBPS, uint256 newProposalThresholdBPS)',
    'QuorumVotesBPSSet(uint256 oldQuorumVotesBPS, uint256 newQuorumVotesBPS)',
    'MinQuorumVotesBPSSet(uint16 oldMinQuorumVotesBPS, uint16 newMinQuorumVotesBPS)',
    'MaxQuorumVotesBPSSet(uint16 oldMaxQuorumVotesBPS, uint16 newMaxQuorumVotesBPS)',
    'QuorumCoefficientSet(uint32 oldQuorumCoefficient, uint32 newQuorumCoefficient)',
    'ObjectionPeriodDurationSet(uint32 oldObjectionPeriodDurationInBlocks, uint32 newObjectionPeriodDurationInBlocks)',
    'LastMinuteWindowSet(uint32 oldLastMinuteWindowInBlocks, uint32 newLastMinuteWindowInBlocks)',
    'ProposalUpdatablePeriodSet(uint32 oldProposalUpdatablePeriodInBlocks, uint32 newProposalUpdatablePeriodInBlocks)',
    'TimelocksAndAdminSet(address timelock, address timelockV1, address admin)',
    'Withdraw(uint256 amount, bool sent)',
]

# NounsDAOData

PROPOSAL_CANDIDATE_CREATED = 'ProposalCandidateCreated(address indexed msgSender, address[] targets, uint256[] values, string[] signatures, bytes[] calldatas, string description, string slug, uint256 proposalIdToUpdate, bytes32 encodedProposalHash)'
PROPOSAL_CANDIDATE_UPDATED = 'ProposalCandidateUpdated(address indexed msgSender, address[] targets, uint256[] values, string[] signatures, bytes[] calldatas, string description, string slug, uint256 proposalIdToUpdate, bytes32 encodedProposalHash, string reason)'
PROPOSAL_CANDIDATE_CANCELED = 'ProposalCandidateCanceled(address indexed msgSender, string slug)'
SIGNATURE_ADDED = 'SignatureAdded(address indexed signer, bytes sig, uint256 expirationTimestamp, address proposer, string slug, uint256 proposalIdToUpdate, bytes32 encodedPropHash, bytes32 sigDigest, string reason)'
FEEDBACK_SENT = 'FeedbackSent(address indexed msgSender, uint256 proposalId, uint8 support, string reason)'
CANDIDATE_FEEDBACK_SENT = 'CandidateFeedbackSent(address indexed msgSender, address indexed proposer, string slug, uint8 support, string reason)'
PROPOSAL_COMPLIANCE_SIGNALED = 'ProposalComplianceSignaled(uint256 indexed proposalId, uint8 signal, string reason)'
DUNA_ADMIN_MESSAGE_POSTED = 'DunaAdminMessagePosted(string message, uint256[] relatedProposals)'
VOTER_MESSAGE_TO_DUNA_ADMIN_POSTED = 'VoterMessageToDunaAdminPosted(string message, uint256[] relatedProposals)'

NOUNS_DAO_DATA = [
    PROPOSAL_CANDIDATE_CREATED,
    PROPOSAL_CANDIDATE_UPDATED,
    PROPOSAL_CANDIDATE_CANCELED,
    SIGNATURE_ADDED,
    FEEDBACK_SENT,
    CANDIDATE_FEEDBACK_SENT,
    PROPOSAL_COMPLIANCE_SIGNALED,
    DUNA_ADMIN_MESSAGE_POSTED,
    VOTER_MESSAGE_TO_DUNA_ADMIN_POSTED,
    'DunaAdminSet(address oldDunaAdmin, address newDunaAdmin)',
    'CreateCandidateCostSet(uint256 oldCreateCandidateCost, uint256 newCreateCandidateCost)',
    'UpdateCandidateCostSet(uint256 oldUpdateCandidateCost, uint256 newUpdateCandidateCost)',
    'FeeRecipientSet(address oldFeeRecipient, address newFeeRecipient)',
    'ETHWithdrawn(address indexed to, uint256 amount)',
    OWNERSHIP_TRANSFERRED,
    ADMIN_CHANGED,
    UPGRADED,
]

# Treasury timelocks (V1 and V2 share the shape)

QUEUE_TRANSACTION = 'QueueTransaction(bytes32 indexed txHash, address indexed target, uint256 value, string signature, bytes data, uint256 eta)'
EXECUTE_TRANSACTION = 'ExecuteTransaction(bytes32 indexed txHash, address indexed target, uint256 value, string signature, bytes data, uint256 eta)'
CANCEL_TRANSACTION = 'CancelTransaction(bytes32 indexed txHash, address indexed target, uint256 value, string signature, bytes data, uint256 eta)'
ETH_SENT = 'ETHSent(address to, uint256 amount)'
ERC20_SENT = 'ERC20Sent(address to, address erc20Token, uint256 amount)'

TREASURY_V1 = [
    QUEUE_TRANSACTION,
    EXECUTE_TRANSACTION,
    CANCEL_TRANSACTION,
    'NewAdmin(address indexed newAdmin)',
    'NewPendingAdmin(address indexed newPendingAdmin)',
    'NewDelay(uint256 indexed newDelay)',
]

TREASURY_V2 = TREASURY_V1 + [
    ETH_SENT,
    ERC20_SENT,
    ADMIN_CHANGED,
    UPGRADED,
]

# ClientRewards

CLIENT_REGISTERED = 'ClientRegistered(uint32 indexed clientId, string name, string description)'
CLIENT_UPDATED = 'ClientUpdated(uint32 indexed clientId, string name, string description)'
CLIENT_APPROVAL_SET = 'ClientApprovalSet(uint32 indexed clientId, bool approved)'
CLIENT_REWARDED = 'ClientRewarded(uint32 indexed clientId, uint256 amount)'
CLIENT_BALANCE_WITHDRAWAL = 'ClientBalanceWithdrawal(uint32 indexed clientId, uint256 amount, address to)'
AUCTION_REWARDS_UPDATED = 'AuctionRewardsUpdated(uint32 firstAuctionId, uint32 lastAuctionId)'
PROPOSAL_REWARDS_UPDATED = 'ProposalRewardsUpdated(uint32 firstProposalId, uint32 lastProposalId, uint64 firstAuctionIdForRevenue, uint64 lastAuctionIdForRevenue, uint256 auctionRevenue, uint256 rewardPerProposal, uint256 rewardPerVote)'

CLIENT_REWARDS = [
    CLIENT_REGISTERED,
    CLIENT_UPDATED,
    CLIENT_APPROVAL_SET,
    CLIENT_REWARDED,
    CLIENT_BALANCE_WITHDRAWAL,
    AUCTION_REWARDS_UPDATED,
    PROPOSAL_REWARDS_UPDATED,
    'AuctionRewardsEnabled(uint32 nextAuctionIdToReward)',
    'AuctionRewardsDisabled()',
    'ProposalRewardsEnabled(uint32 nextProposalIdToReward, uint256 nextProposalRewardFirstAuctionId)',
    'ProposalRewardsDisabled()',
    PAUSED,
    UNPAUSED,
    OWNERSHIP_TRANSFERRED,
    ADMIN_CHANGED,
    UPGRADED,
]

# Token buyer, payer & streams

SOLD_ETH = 'SoldETH(address indexed to, uint256 ethOut, uint256 tokenIn)'
REGISTERED_DEBT = 'RegisteredDebt(address account, uint256 amount)'
PAID_BACK_DEBT = 'PaidBackDebt(address account, uint256 amount, uint256 remainingDebt)'
STREAM_CREATED = 'StreamCreated(address indexed msgSender, address indexed payer, address indexed recipient, uint256 tokenAmount, address tokenAddress, uint256 startTime, uint256 stopTime, address streamAddress)'

TOKEN_BUYER = [
    SOLD_ETH,
    'PriceFeedSet(address oldFeed, address newFeed)',
    'PayerSet(address oldPayer, address newPayer)',
    'BaselinePaymentTokenAmountSet(uint256 oldAmount, uint256 newAmount)',
    'BotDiscountBPsSet(uint16 oldBPs, uint16 newBPs)',
    'ETHWithdrawn(address indexed to, uint256 amount)',
    'AdminSet(address oldAdmin, address newAdmin)',
    'MaxAdminBaselinePaymentTokenAmountSet(uint256 oldAmount, uint256 newAmount)',
    'MinAdminBaselinePaymentTokenAmountSet(uint256 oldAmount, uint256 newAmount)',
    'MaxAdminBotDiscountBPsSet(uint16 oldBPs, uint16 newBPs)',
    'MinAdminBotDiscountBPsSet(uint16 oldBPs, uint16 newBPs)',
    OWNERSHIP_TRANSFERRED,
    PAUSED,
    UNPAUSED,
]

PAYER = [
    REGISTERED_DEBT,
    PAID_BACK_DEBT,
    'TokensWithdrawn(address account, uint256 amount)',
    OWNERSHIP_TRANSFERRED,
]

STREAM_FACTORY = [
    STREAM_CREATED,
]

CONTRACT_EVENTS = {
    'NounsToken': NOUNS_TOKEN,
    'NounsAuctionHouse': NOUNS_AUCTION_HOUSE,
    'NounsDescriptorV3': NOUNS_DESCRIPTOR,
    'NounsDAO': NOUNS_DAO,
    'NounsDAOData': NOUNS_DAO_DATA,
    'TreasuryV1': TREASURY_V1,
    'TreasuryV2': TREASURY_V2,
    'ClientRewards': CLIENT_REWARDS,
    'TokenBuyer': TOKEN_BUYER,
    'Payer': PAYER,
    'StreamFactory': STREAM_FACTORY,
}

# Read-side function ABIs for authoritative on-chain reads.

CLIENT_REWARDS_READ_ABI = [
    {
        'type': 'function', 'name': 'clientMetadata', 'stateMutability': 'view',
        'inputs': [{'name': 'tokenId', 'type': 'uint32'}],
        'outputs': [{'name': '', 'type': 'tuple', 'components': [
            {'name': 'approved', 'type': 'bool'},
            {'name': 'rewarded', 'type': 'uint96'},
            {'name': 'withdrawn', 'type': 'uint96'},
            {'name': 'name', 'type': 'string'},
            {'name': 'description', 'type': 'string'},
        ]}],
    },
    {
        'type': 'function', 'name': 'tokenURI', 'stateMutability': 'view',
        'inputs': [{'name': 'tokenId', 'type': 'uint256'}],
        'outputs': [{'name': '', 'type': 'string'}],
    },
]

NOUNS_DAO_READ_ABI = [
    {
        'type': 'function', 'name': 'quorumVotes', 'stateMutability': 'view',
        'inputs': [{'name': 'proposalId', 'type': 'uint256'}],
        'outputs': [{'name': '', 'type': 'uint256'}],
    },
]
