from app.services.conversation_service import (
    insert_conversation,
    insert_conversation_claim,
    update_conversation,
)
from app.services.message_service import (
    compute_reply,
    process_inbound_message,
)
from app.services.payload_normalizer import (
    InboundMessage,
    normalize_request_body,
)
