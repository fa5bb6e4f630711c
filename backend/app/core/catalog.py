"""
Static product catalogue shown by the order widget.

Prices are not kept here: they come from the pricing webhook and are resolved by
app.services.pricing.
"""
from typing import Any, Dict

CALLS_PRODUCT = "inbound_outbound_calls"
EMAILS_PRODUCT = "emails"
CHAT_PRODUCT = "chatbot"

PRODUCTS: Dict[str, Dict[str, Any]] = {
    CALLS_PRODUCT: {
        "name": "Inbound and Outbound Calls",
        "description": "Intelligent phone call handling with AI agents",
        "has_phone_setup": True,
        "features": [
            "Intelligent call routing",
            "Natural language processing",
            "Call transcription",
            "Real-time analytics",
        ],
    },
    EMAILS_PRODUCT: {
        "name": "Emails",
        "description": "Automated email responses powered by AI",
        "has_phone_setup": False,
        "features": [
            "Smart email composition",
            "Sentiment analysis",
            "Priority detection",
            "Automated responses",
        ],
    },
    CHAT_PRODUCT: {
        "name": "Chatbot",
        "description": "Live chat with AI-powered assistance",
        "has_phone_setup": False,
        "features": [
            "Real-time chat support",
            "Multi-language support",
            "Context-aware responses",
            "Seamless handoff to humans",
        ],
    },
}

# Upstream rows may still use the older product slugs
PRODUCT_ALIASES: Dict[str, str] = {
    "ai_calls": CALLS_PRODUCT,
    "ai_emails": EMAILS_PRODUCT,
    "email_agents": EMAILS_PRODUCT,
    "ai_chat": CHAT_PRODUCT,
    "chat_agents": CHAT_PRODUCT,
}

ADDONS: Dict[str, str] = {
    "Quality Assurance": "Quality assurance and call monitoring",
    "AVS Match": "Address Verification System matching",
    "Custom Package": "Tailored solution for specific needs",
    "Lead Verification": "Automated lead validation and scoring",
    "Transcriptions & Recordings": "Call recording and transcription service",
}

AGENT_LEVELS: Dict[str, str] = {
    "Quick": "Fast responses for simple call flows",
    "Advanced": "Enhanced AI with custom script adaptation",
    "Conversational": "Natural, free-flowing conversations",
}

CALL_SETUP_TYPES: Dict[str, str] = {
    "purchase": "Purchase Number",
    "byo": "BYONumber (Porting)",
    "forwarding": "Forwarding",
}

PHONE_NUMBER_TYPES: Dict[str, str] = {
    "toll_free": "Toll-Free",
    "direct_dial": "Direct Dial (DID)",
}

ASSIGNMENT_TYPES: Dict[str, str] = {
    "single": "Assign Single Agent to All Service Numbers",
    "individual": "Assign an Agent to Each Number",
}


def normalize_product(slug: Any) -> str:
    if not isinstance(slug, str):
        return ""
    return PRODUCT_ALIASES.get(slug, slug)


def is_known_product(slug: str) -> bool:
    return normalize_product(slug) in PRODUCTS


def product_has_phone_setup(slug: str) -> bool:
    product = PRODUCTS.get(normalize_product(slug))
    return bool(product and product["has_phone_setup"])


def as_dict() -> Dict[str, Any]:
    return {
        "products": PRODUCTS,
        "addons": ADDONS,
        "agent_levels": AGENT_LEVELS,
        "call_setup_types": CALL_SETUP_TYPES,
        "phone_number_types": PHONE_NUMBER_TYPES,
        "assignment_types": ASSIGNMENT_TYPES,
    }
