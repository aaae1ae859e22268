"""
Configuration management for AWS services and pipeline settings.
"""

import os
from dataclasses import dataclass, field
from typing import Tuple

from dotenv import load_dotenv

load_dotenv()


@dataclass
class BedrockLLMConfig:
    """Configuration for the Amazon Bedrock model used for conversation analysis."""
    region: str
    model_id: str
    max_tokens: int
    temperature: float
    retry_attempts: int
    retry_delay: float
    read_timeout: int


@dataclass
class TranscribeConfig:
    """Configuration for Amazon Transcribe and its S3 staging bucket."""
    region: str
    bucket: str
    key_prefix: str
    language_code: str
    poll_interval: float
    timeout: float


@dataclass
class OpenSearchConfig:
    """Configuration for the OpenSearch record store."""
    endpoint: str
    port: int
    region: str
    index_prefix: str
    service: str


@dataclass
class PipelineConfig:
    """Configuration for transcript processing."""
    max_workers: int
    max_upload_bytes: int
    suggestion_limit: int
    allowed_extensions: Tuple[str, ...] = field(default=('.mp3', '.wav', '.m4a', '.webm', '.ogg', '.mp4'))
    record_store: str = 'opensearch'


@dataclass
class MCPConfig:
    """Configuration for MCP interface."""
    transport: str
    host: str
    port: int


@dataclass
class AppConfig:
    """Main application configuration."""
    environment: str
    log_level: str
    bedrock_llm: BedrockLLMConfig
    transcribe: TranscribeConfig
    opensearch: OpenSearchConfig
    pipeline: PipelineConfig
    mcp: MCPConfig


def load_config() -> AppConfig:
    """Load configuration from environment variables with defaults."""
    environment = os.getenv('ENVIRONMENT', 'development')

    bedrock_llm_config = BedrockLLMConfig(region=os.getenv('BEDROCK_LLM_AWS_REGION', 'us-east-1'),
                                          model_id=os.getenv('BEDROCK_LLM_MODEL_ID', 'anthropic.claude-3-sonnet-20240229-v1:0'),
                                          max_tokens=int(os.getenv('BEDROCK_LLM_MAX_TOKENS', '8000')),
                                          temperature=float(os.getenv('BEDROCK_LLM_TEMPERATURE', '0.3')),
                                          retry_attempts=int(os.getenv('BEDROCK_LLM_RETRY_ATTEMPTS', '3')),
                                          retry_delay=float(os.getenv('BEDROCK_LLM_RETRY_DELAY', '1.0')),
                                          read_timeout=int(os.getenv('BEDROCK_LLM_READ_TIMEOUT', '120')))

    transcribe_config = TranscribeConfig(region=os.getenv('TRANSCRIBE_AWS_REGION', 'us-east-1'),
                                         bucket=os.getenv('TRANSCRIBE_BUCKET', 'convointel-audio'),
                                         key_prefix=os.getenv('TRANSCRIBE_KEY_PREFIX', 'uploads/'),
                                         language_code=os.getenv('TRANSCRIBE_LANGUAGE_CODE', 'en-US'),
                                         poll_interval=float(os.getenv('TRANSCRIBE_POLL_INTERVAL', '5.0')),
                                         timeout=float(os.getenv('TRANSCRIBE_TIMEOUT', '900')))

    opensearch_config = OpenSearchConfig(endpoint=os.getenv('OPENSEARCH_ENDPOINT', 'localhost'),
                                         port=int(os.getenv('OPENSEARCH_PORT', '443')),
                                         region=os.getenv('OPENSEARCH_AWS_REGION', 'us-east-1'),
                                         index_prefix=os.getenv('OPENSEARCH_INDEX_PREFIX', 'convointel'),
                                         service=os.getenv('OPENSEARCH_SERVICE', 'aoss'))

    pipeline_config = PipelineConfig(max_workers=int(os.getenv('PIPELINE_MAX_WORKERS', '4')),
                                     max_upload_bytes=int(os.getenv('PIPELINE_MAX_UPLOAD_BYTES', str(100 * 1024 * 1024))),
                                     suggestion_limit=int(os.getenv('PIPELINE_SUGGESTION_LIMIT', '10')),
                                     record_store=os.getenv('RECORD_STORE', 'opensearch'))

    mcp_config = MCPConfig(transport=os.getenv('MCP_TRANSPORT', 'sse'),
                           host=os.getenv('MCP_HOST', '127.0.0.1'),
                           port=int(os.getenv('MCP_PORT', '8000')))

    return AppConfig(environment=environment,
                     log_level=os.getenv('LOG_LEVEL', 'INFO'),
                     bedrock_llm=bedrock_llm_config,
                     transcribe=transcribe_config,
                     opensearch=opensearch_config,
                     pipeline=pipeline_config,
                     mcp=mcp_config)


# Global configuration instance
config = load_config()
