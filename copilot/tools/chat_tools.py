"""Chat assistant that answers spending questions from verified transactions only"""

from typing import Dict, Iterable, List, Optional
import pandas as pd
from pydantic import ValidationError
from copilot.constants import ChatRole, TransactionStatus, CHAT_FALLBACK_REPLY
from copilot.models import ChatMessage, Transaction
from copilot.tools.document_store import DocumentStore, chat_path, transactions_path
from copilot.tools.llm_client import LLMClient
from copilot.utils.config_loader import CopilotConfig
from copilot.utils.errors import LLMError, StoreError
from copilot.utils.logging import get_logger

logger = get_logger(__name__)


def verified_frame(transactions: Iterable[Transaction]) -> pd.DataFrame:
    """Verified transactions as a DataFrame (merchant, amount, category, date)"""
    rows = [
        {
            'merchant': tx.merchant_name,
            'amount': tx.amount,
            'category': tx.category,
            'date': tx.occurred_at.date().isoformat() if tx.occurred_at else 'N/A'
        }
        for tx in transactions
        if tx.status == TransactionStatus.VERIFIED
    ]
    return pd.DataFrame(rows, columns=['merchant', 'amount', 'category', 'date'])


def spending_by_category(frame: pd.DataFrame) -> Dict[str, float]:
    if frame.empty:
        return {}
    totals = frame.groupby('category')['amount'].sum().round(2).sort_values(ascending=False)
    return {category: float(total) for category, total in totals.items()}


def build_chat_system_prompt(history: List[ChatMessage], transactions: Iterable[Transaction]) -> str:
    frame = verified_frame(transactions)

    if frame.empty:
        tx_summary = "No verified transactions found."
        totals_summary = "None."
    else:
        tx_summary = "\n".join(
            f"{row.merchant} (${row.amount:.2f}) in {row.category} on {row.date}"
            for row in frame.itertuples(index=False)
        )
        totals_summary = "\n".join(
            f"{category}: ${total:.2f}" for category, total in spending_by_category(frame).items()
        )

    chat_history = "\n".join(f"{m.role.value}: {m.text}" for m in history)

    return f"""
You are a helpful AI financial co-pilot.
You MUST answer questions based ONLY on the user's provided verified transaction data.
Do not make up information. If the answer isn't in the data, say you can't find it.
Be concise and friendly.

CURRENT CHAT HISTORY (for context, do not repeat):
{chat_history}

USER'S VERIFIED TRANSACTION DATA (this is your only source of financial truth):
{tx_summary}

SPENDING BY CATEGORY:
{totals_summary}
""".strip()


class ChatAssistant:
    """Keeps a local copy of the chat history and mirrors it to the store"""

    def __init__(self, config: CopilotConfig, store: DocumentStore, llm: LLMClient, user_id: str):
        self.store = store
        self.llm = llm
        self.user_id = user_id
        self.log = logger.bind(user_id=user_id)
        self.chat_collection = chat_path(config.app.app_id, user_id)
        self.transactions_collection = transactions_path(config.app.app_id, user_id)
        self.history: List[ChatMessage] = []

    async def load_history(self) -> List[ChatMessage]:
        docs = await self.store.list(self.chat_collection, order_by='created_at')
        self.history = [ChatMessage.model_validate(doc) for doc in docs]
        return self.history

    async def send(self, text: str) -> Optional[ChatMessage]:
        """
        Post a user message and persist the model's reply.

        The user message is added to local history before it is saved and
        removed again if the save fails.

        Returns:
            The reply message, or None for blank input

        Raises:
            StoreError: If the user message or the reply could not be saved
        """
        text = (text or "").strip()
        if not text:
            return None

        user_message = ChatMessage(role=ChatRole.USER, text=text)
        self.history.append(user_message)
        try:
            await self.store.create(self.chat_collection, user_message.model_dump(mode="json"))
        except StoreError as e:
            self.history.remove(user_message)
            self.log.error(f"Error saving user message: {e}")
            raise

        transactions = await self._load_transactions()
        system_prompt = build_chat_system_prompt(self.history, transactions)

        try:
            reply_text = await self.llm.generate(text, system_prompt)
        except LLMError as e:
            self.log.error(f"Chat generation failed: {e}")
            reply_text = CHAT_FALLBACK_REPLY

        reply = ChatMessage(role=ChatRole.MODEL, text=reply_text)
        await self.store.create(self.chat_collection, reply.model_dump(mode="json"))
        self.history.append(reply)
        return reply

    async def _load_transactions(self) -> List[Transaction]:
        docs = await self.store.list(self.transactions_collection, order_by='occurred_at', descending=True)
        transactions = []
        for doc in docs:
            try:
                transactions.append(Transaction.from_document(doc))
            except ValidationError as e:
                self.log.warning(f"Skipping malformed transaction document: {e}", txn_id=doc.get('id'))
        return transactions
