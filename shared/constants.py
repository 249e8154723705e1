MODEL_GPT_3_5 = "gpt-3.5-turbo"
MODEL_GPT_3_5_16K = "gpt-3.5-turbo-16k"
MODEL_GPT_4 = "gpt-4"
MODEL_GPT_4_32K = "gpt-4-32k"

ROLE_SYSTEM = "system"

ERROR_RATE_LIMIT = "rate_limit"
ERROR_AUTH = "openai_auth_error"
ERROR_CONTEXT_LENGTH = "context_length_exceeded"
ERROR_GENERIC_OPENAI = "generic_openai_error"
ERROR_OPENAI = "openai_error"
ERROR_UNEXPECTED = "unexpected_error"
