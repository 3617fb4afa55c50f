"""Cache namespace and content type constants."""

# Cache namespaces - also the first segment of durable-store paths
NAMESPACE_TTS = "tts"  # tts:{digest} -> synthesized audio
NAMESPACE_CONVERSATION_TEXT = "conv-text"  # conv-text:{digest} -> conversation JSON
NAMESPACE_CONVERSATION_AUDIO = "conv-audio"  # conv-audio:{digest} -> per-turn audio

NAMESPACES = (NAMESPACE_TTS, NAMESPACE_CONVERSATION_TEXT, NAMESPACE_CONVERSATION_AUDIO)

# Artifact content types
CONTENT_TYPE_AUDIO = "audio/mpeg"
CONTENT_TYPE_JSON = "application/json"

EXTENSION_AUDIO = "mp3"
EXTENSION_JSON = "json"
