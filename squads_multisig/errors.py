"""Exception hierarchy for the Squads multisig client."""

from typing import Optional


class SquadsError(Exception):
    """Base class for every error raised by this package."""


class InvalidAddress(SquadsError, ValueError):
    """A string is not a base58-encoded 32-byte public key."""


class KeypairError(SquadsError):
    """A keypair file could not be read or is inconsistent."""


# Address derivation

class InvalidSeeds(SquadsError):
    """Seeds are too long, too many, or hash onto the curve."""


class AddressDerivationExhausted(SquadsError):
    """No bump in [0, 255] produced an off-curve address."""

    def __init__(self, seeds: list[bytes], program_id: str):
        self.seeds = seeds
        self.program_id = program_id
        super().__init__(
            f"Unable to find a viable program address bump for {len(seeds)} seed(s) "
            f"under program {program_id}"
        )


# Message compilation

class UnresolvedAccountReference(SquadsError):
    """An instruction references an address the resolver never saw."""

    def __init__(self, address: str):
        self.address = address
        super().__init__(f"Instruction references unresolved account {address}")


class MessageTooLarge(SquadsError):
    """A count or index does not fit in its compact length prefix."""


# Codec

class MalformedAccountData(SquadsError):
    """Raw account bytes do not match the expected record layout."""

    def __init__(self, record: str, detail: str):
        self.record = record
        self.detail = detail
        super().__init__(f"Malformed {record} data: {detail}")


class AccountNotFound(SquadsError):
    def __init__(self, address: str, record: str):
        self.address = address
        self.record = record
        super().__init__(f"{record} account not found: {address}")


# Local precondition checks

class PreconditionFailed(SquadsError):
    """The external program would certainly reject this instruction."""


class WrongState(PreconditionFailed):
    def __init__(self, action: str, status_label: str):
        self.action = action
        self.status_label = status_label
        super().__init__(f"Cannot {action} a proposal in state {status_label}")


class StaleTransaction(WrongState):
    def __init__(self, action: str, transaction_index: int, stale_transaction_index: int):
        self.action = action
        self.status_label = "Stale"
        self.transaction_index = transaction_index
        self.stale_transaction_index = stale_transaction_index
        PreconditionFailed.__init__(
            self,
            f"Cannot {action} transaction #{transaction_index}: it is stale "
            f"(stale transaction index is {stale_transaction_index})",
        )


class AlreadyVoted(PreconditionFailed):
    def __init__(self, member: str, vote: str):
        self.member = member
        self.vote = vote
        super().__init__(f"Member {member} has already voted on this proposal ({vote})")


class NotApproved(PreconditionFailed):
    def __init__(self, status_label: str, approvals: int, threshold: int):
        self.status_label = status_label
        self.approvals = approvals
        self.threshold = threshold
        super().__init__(
            f"Proposal is not in approved state, current status: {status_label} "
            f"(approvals {approvals}/{threshold})"
        )


class TimelockNotElapsed(PreconditionFailed):
    def __init__(self, remaining_seconds: int, executable_after: int):
        self.remaining_seconds = remaining_seconds
        self.executable_after = executable_after
        super().__init__(
            f"Timelock has not elapsed yet: {remaining_seconds} second(s) remaining"
        )


class NotAMember(PreconditionFailed):
    def __init__(self, address: str, multisig: Optional[str] = None):
        self.address = address
        self.multisig = multisig
        where = f" of multisig {multisig}" if multisig else ""
        super().__init__(f"{address} is not a member{where}")


class NoProposePermission(PreconditionFailed):
    def __init__(self, address: str):
        self.address = address
        super().__init__(f"Member {address} does not have propose permission")


class NoVotePermission(PreconditionFailed):
    def __init__(self, address: str):
        self.address = address
        super().__init__(f"Member {address} does not have vote permission")


class NoExecutePermission(PreconditionFailed):
    def __init__(self, address: str):
        self.address = address
        super().__init__(f"Executor {address} does not have execute permission")


class InvalidThreshold(PreconditionFailed):
    def __init__(self, threshold: int, voting_members: int, explanation: str = ""):
        self.threshold = threshold
        self.voting_members = voting_members
        self.explanation = explanation
        super().__init__(
            f"Invalid threshold: {threshold}. Must be between 1 and the number of "
            f"voting members ({voting_members})"
        )


class ValueOutOfRange(PreconditionFailed, ValueError):
    """A numeric argument does not fit the field the program stores it in."""

    def __init__(self, name: str, value: int, low: int, high: int):
        self.name = name
        self.value = value
        self.low = low
        self.high = high
        super().__init__(f"Invalid {name}: {value}. Must be between {low} and {high}")


class InsufficientVaultBalance(PreconditionFailed):
    def __init__(self, vault: str, balance: int, requested: int):
        self.vault = vault
        self.balance = balance
        self.requested = requested
        super().__init__(
            f"Vault balance is insufficient: {balance / 1e9:f} SOL, "
            f"trying to send {requested / 1e9:f} SOL"
        )


# Transport and submission

class RemoteUnavailable(SquadsError):
    def __init__(self, endpoint: str, cause: Exception):
        self.endpoint = endpoint
        self.cause = cause
        super().__init__(f"RPC endpoint unavailable ({endpoint}): {cause}")


class Timeout(SquadsError):
    def __init__(self, operation: str):
        self.operation = operation
        super().__init__(f"Deadline exceeded during {operation}")


class RpcError(SquadsError):
    """The RPC node answered with a JSON-RPC error object."""

    def __init__(self, method: str, error: dict):
        self.method = method
        self.code = error.get("code")
        self.rpc_message = error.get("message", "")
        self.data = error.get("data")
        super().__init__(f"RPC error from {method}: {self.rpc_message} (code {self.code})")

    @property
    def logs(self) -> list[str]:
        if isinstance(self.data, dict):
            return self.data.get("logs") or []
        return []


class SubmissionRejected(RpcError):
    """The transaction was refused by the node or the on-chain program."""


class MissingSignature(SquadsError):
    def __init__(self, missing: list[str]):
        self.missing = missing
        super().__init__(f"Transaction is missing signatures for: {', '.join(missing)}")


class TransactionFailed(SubmissionRejected):
    """The transaction landed but its execution failed on-chain."""

    def __init__(self, signature: str, err):
        self.method = "getSignatureStatuses"
        self.code = None
        self.rpc_message = f"Transaction failed with error: {err}"
        self.data = {"err": err}
        self.signature = signature
        SquadsError.__init__(self, f"Transaction {signature} failed with error: {err}")
