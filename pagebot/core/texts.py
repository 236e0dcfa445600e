# pagebot/core/texts.py
"""Fixed user-facing texts. The bot speaks Arabic."""

FALLBACK_GREETING = "مرحباً بك! كيف يمكننا مساعدتك اليوم؟"

QUICK_REPLY_PROMPT = "اختر أحد الخيارات:"

# System prompt for the AI path
SYSTEM_PROMPT_HEAD = "أنت مساعد خدمة عملاء ذكي"
SYSTEM_PROMPT_PRODUCT = " متخصص في المنتج: {product}"
SYSTEM_PROMPT_TAIL = ". استخدم المعلومات التالية للرد على العملاء:\n\n"

CUSTOMER_NAME_TEMPLATE = "User {sender_id}"
CONVERSATION_SOURCE = "Messenger"
