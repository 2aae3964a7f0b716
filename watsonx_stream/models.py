"""Model identifiers and service defaults.

These are the commonly used foundation models; the service publishes the
authoritative list through its model-spec endpoint.
"""

from __future__ import annotations

from typing import Final


class Models:
    """Read-only namespace of model identifiers."""

    # IBM Granite
    GRANITE_4_H_SMALL: Final = "ibm/granite-4-h-small"
    GRANITE_3_3_8B_INSTRUCT: Final = "ibm/granite-3-3-8b-instruct"
    GRANITE_3_3_8B_INSTRUCT_NP: Final = "ibm/granite-3-3-8b-instruct-np"
    GRANITE_3_2_8B_INSTRUCT: Final = "ibm/granite-3-2-8b-instruct"
    GRANITE_3_2B_INSTRUCT: Final = "ibm/granite-3-2b-instruct"
    GRANITE_3_1_8B_BASE: Final = "ibm/granite-3-1-8b-base"
    GRANITE_3_8B_INSTRUCT: Final = "ibm/granite-3-8b-instruct"
    GRANITE_8B_CODE_INSTRUCT: Final = "ibm/granite-8b-code-instruct"
    GRANITE_GUARDIAN_3_8B: Final = "ibm/granite-guardian-3-8b"
    GRANITE_VISION_3_2_2B: Final = "ibm/granite-vision-3-2-2b"
    GRANITE_EMBEDDING_107M_MULTILINGUAL: Final = "ibm/granite-embedding-107m-multilingual"
    GRANITE_EMBEDDING_278M_MULTILINGUAL: Final = "ibm/granite-embedding-278m-multilingual"
    GRANITE_TTM_1024_96_R2: Final = "ibm/granite-ttm-1024-96-r2"
    GRANITE_TTM_1536_96_R2: Final = "ibm/granite-ttm-1536-96-r2"
    GRANITE_TTM_512_96_R2: Final = "ibm/granite-ttm-512-96-r2"

    # IBM Slate
    SLATE_125M_ENGLISH_RTRVR: Final = "ibm/slate-125m-english-rtrvr"
    SLATE_125M_ENGLISH_RTRVR_V2: Final = "ibm/slate-125m-english-rtrvr-v2"
    SLATE_30M_ENGLISH_RTRVR: Final = "ibm/slate-30m-english-rtrvr"
    SLATE_30M_ENGLISH_RTRVR_V2: Final = "ibm/slate-30m-english-rtrvr-v2"

    # Meta Llama
    LLAMA_3_1_70B_GPTQ: Final = "meta-llama/llama-3-1-70b-gptq"
    LLAMA_3_1_8B: Final = "meta-llama/llama-3-1-8b"
    LLAMA_3_2_11B_VISION_INSTRUCT: Final = "meta-llama/llama-3-2-11b-vision-instruct"
    LLAMA_3_2_90B_VISION_INSTRUCT: Final = "meta-llama/llama-3-2-90b-vision-instruct"
    LLAMA_3_3_70B_INSTRUCT: Final = "meta-llama/llama-3-3-70b-instruct"
    LLAMA_3_405B_INSTRUCT: Final = "meta-llama/llama-3-405b-instruct"
    LLAMA_4_MAVERICK_17B_128E_INSTRUCT_FP8: Final = "meta-llama/llama-4-maverick-17b-128e-instruct-fp8"
    LLAMA_GUARD_3_11B_VISION: Final = "meta-llama/llama-guard-3-11b-vision"

    # Mistral AI
    MISTRAL_MEDIUM_2505: Final = "mistralai/mistral-medium-2505"
    MISTRAL_SMALL_3_1_24B_INSTRUCT_2503: Final = "mistralai/mistral-small-3-1-24b-instruct-2503"

    # OpenAI
    GPT_OSS_120B: Final = "openai/gpt-oss-120b"

    # Other
    CROSS_ENCODER_MS_MARCO_MINILM_L_12_V2: Final = "cross-encoder/ms-marco-minilm-l-12-v2"
    INTFLOAT_MULTILINGUAL_E5_LARGE: Final = "intfloat/multilingual-e5-large"
    SENTENCE_TRANSFORMERS_ALL_MINILM_L6_V2: Final = "sentence-transformers/all-minilm-l6-v2"


DEFAULT_MODEL: Final = Models.GRANITE_4_H_SMALL

MAX_TOKENS_LIMIT: Final = 131_072
DEFAULT_MAX_TOKENS: Final = 8192
QUICK_RESPONSE_MAX_TOKENS: Final = 2048

DEFAULT_TIMEOUT_SECS: Final = 120
DEFAULT_API_VERSION: Final = "2023-05-29"
DEFAULT_IAM_URL: Final = "iam.cloud.ibm.com"
DEFAULT_API_URL: Final = "https://us-south.ml.cloud.ibm.com"

DEFAULT_ORCHESTRATE_REGION: Final = "us-south"
DEFAULT_ORCHESTRATE_URL: Final = "https://{region}.watson-orchestrate.cloud.ibm.com/api/v1/"
