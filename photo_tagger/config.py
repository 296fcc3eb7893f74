import os

SUPPORTED_EXTENSIONS = {".jpg", ".jpeg", ".png", ".webp", ".tif", ".tiff", ".heif", ".heic"}

# -- batch defaults --

DEFAULT_CONFIDENCE = 85.0
DEFAULT_TOP = 10

# -- scoped temp images handed to collaborators --

RESIZE_MAX_SIZE = int(os.environ.get("PHOTO_TAGGER_RESIZE_MAX", "1000"))
TEMP_PREFIX = "photo_tagger_resized_"

# -- providers --

OPENAI_BASE_URL = os.environ.get("OPENAI_BASE_URL", "https://api.openai.com/v1")
OPENAI_API_KEY = os.environ.get("OPENAI_API_KEY", "")
OLLAMA_BASE_URL = os.environ.get("OLLAMA_HOST", "http://127.0.0.1:11434")
PROVIDER_TIMEOUT = float(os.environ.get("PHOTO_TAGGER_TIMEOUT", "120"))

DESCRIBE_PROVIDER = os.environ.get("PHOTO_TAGGER_DESCRIBE_PROVIDER", "openai")
DESCRIBE_MODEL = os.environ.get("PHOTO_TAGGER_DESCRIBE_MODEL", "gpt-4o-mini")

CLASSIFY_PROVIDER = os.environ.get("PHOTO_TAGGER_CLASSIFY_PROVIDER", "openai")
CLASSIFY_MODEL = os.environ.get("PHOTO_TAGGER_CLASSIFY_MODEL", "gpt-4o-mini")

EMBEDDING_PROVIDER = os.environ.get("PHOTO_TAGGER_EMBEDDING_PROVIDER", "openai")
EMBEDDING_MODEL = os.environ.get("PHOTO_TAGGER_EMBEDDING_MODEL", "text-embedding-3-large")

FACE_PROVIDER = os.environ.get("PHOTO_TAGGER_FACE_PROVIDER", "insightface")
FACE_MODEL = os.environ.get("PHOTO_TAGGER_FACE_MODEL", "buffalo_l")

# open_clip registry names usable with EMBEDDING_PROVIDER=open-clip
OPEN_CLIP_MODELS = {
    "clip-vit-b-16": ("ViT-B-16", "openai", 512),
    "clip-vit-l-14": ("ViT-L-14", "openai", 768),
    "siglip-vit-b-16": ("ViT-B-16-SigLIP", "webli", 768),
}

# -- prompt templates --

DESCRIBE_PROMPT = "Describe the image."

DESCRIBE_CONTEXT_TEMPLATE = "{prompt} Here is some additional context to help: {context}"

CLASSIFY_PROMPT = (
    "You are labelling a photo from its description.\n"
    "Description: {description}\n"
    "People known to be in the photo: {people}\n"
    "Choose exactly one label from this list: {labels}\n"
    "If none of the labels fit, answer none.\n"
    "Answer with the label only, no punctuation or explanation."
)

NO_LABEL_ANSWER = "none"
