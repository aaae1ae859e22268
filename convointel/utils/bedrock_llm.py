"""
Amazon Bedrock Converse client used for conversation analysis, with retry logic and error handling.
"""

import random
import time
from typing import Any, Dict, List, Optional, Tuple

import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

from .config import BedrockLLMConfig
from .logging_config import get_logger

logger = get_logger(__name__)

# Request errors that will fail the same way on every attempt
NON_RETRYABLE_CODES = ('ValidationException', 'AccessDeniedException', 'ResourceNotFoundException', 'ModelNotReadyException')

# Error events ConverseStream can emit mid-stream instead of raising
STREAM_ERROR_EVENTS = ('internalServerException', 'modelStreamErrorException', 'throttlingException', 'validationException',
                       'serviceUnavailableException')


class BedrockLLMError(Exception):
    """Custom exception for Bedrock LLM errors."""
    pass


class StreamInterrupted(Exception):
    """A ConverseStream response ended with an error event."""

    def __init__(self, event_name: str, message: str):
        super().__init__(f'{event_name}: {message}')
        self.retryable = event_name != 'validationException'


class BedrockLLM:
    """Bedrock Converse client that streams one text response per request."""

    def __init__(self, config: BedrockLLMConfig, runtime_client=None):
        """
        Initialize Bedrock LLM client.

        Args:
            config: BedrockLLMConfig instance with connection parameters
            runtime_client: Optional pre-built bedrock-runtime client
        """
        self.config = config
        self.model_id = config.model_id

        # Bounded read timeout so a stalled stream fails the transcript
        self.bedrock_runtime = runtime_client or boto3.client(
            'bedrock-runtime',
            region_name=config.region,
            config=BotoConfig(
                connect_timeout=60,
                read_timeout=config.read_timeout,
                retries={'max_attempts': 0}  # We handle retries manually
            ))

        logger.info(f'Initialized Bedrock LLM client with model: {self.model_id}')

    def _read_stream(self, stream) -> Tuple[str, Optional[Dict[str, Any]]]:
        parts = []
        invoke_metrics = None
        stop_reason = None

        for event in stream or []:
            if 'contentBlockDelta' in event:
                parts.append(event['contentBlockDelta']['delta'].get('text', ''))
            elif 'messageStop' in event:
                stop_reason = event['messageStop'].get('stopReason')
            elif 'metadata' in event:
                metadata = event['metadata']
                invoke_metrics = {**metadata.get('usage', {}), **metadata.get('metrics', {})}
            else:
                for name in STREAM_ERROR_EVENTS:
                    if name in event:
                        raise StreamInterrupted(name, event[name].get('message', ''))

        if stop_reason == 'max_tokens':
            logger.warning(f'Bedrock response hit the {self.config.max_tokens} token limit and is truncated')

        return ''.join(parts), invoke_metrics

    def generate_response(self,
                          messages: List[Dict[str, Any]],
                          system_prompt: str,
                          max_tokens: Optional[int] = None,
                          temperature: Optional[float] = None,
                          stop_sequences: Optional[List[str]] = None) -> Tuple[str, Optional[Dict[str, Any]]]:
        """
        Generate a response, retrying throttling and transient failures.

        A trailing assistant message is treated as a prefill: the model
        continues it and only the continuation is returned.

        Args:
            messages: Converse messages
            system_prompt: System prompt
            max_tokens: Maximum tokens to generate (uses config default if None)
            temperature: Temperature for generation (uses config default if None)
            stop_sequences: Stop sequences for generation

        Returns:
            Tuple of (response_text, invoke_metrics)

        Raises:
            BedrockLLMError: If the request is rejected or all retry attempts fail
        """
        inference_config = {
            'maxTokens': max_tokens or self.config.max_tokens,
            'temperature': self.config.temperature if temperature is None else temperature,
            'stopSequences': stop_sequences or [],
        }
        attempts = max(self.config.retry_attempts, 1)

        for attempt in range(attempts):
            try:
                logger.debug(f'Bedrock LLM request attempt {attempt + 1}/{attempts}')
                response = self.bedrock_runtime.converse_stream(modelId=self.model_id,
                                                                messages=messages,
                                                                system=[{'text': system_prompt}],
                                                                inferenceConfig=inference_config)
                msg, invoke_metrics = self._read_stream(response.get('stream'))

                logger.debug(f'Bedrock LLM response generated successfully (length: {len(msg)})')
                return msg, invoke_metrics

            except ClientError as e:
                code = e.response.get('Error', {}).get('Code', '')
                if code in NON_RETRYABLE_CODES:
                    logger.error(f'Bedrock LLM request rejected ({code}): {e}')
                    raise BedrockLLMError(f'Bedrock LLM request rejected: {e}')
                error = e
            except StreamInterrupted as e:
                if not e.retryable:
                    raise BedrockLLMError(f'Bedrock LLM stream rejected: {e}')
                error = e
            except BotoCoreError as e:
                error = e
            except Exception as e:
                logger.error(f'Unexpected error in Bedrock LLM: {e}')
                raise BedrockLLMError(f'Unexpected Bedrock LLM error: {e}')

            logger.warning(f'Bedrock LLM attempt {attempt + 1}/{attempts} failed: {error}')
            if attempt < attempts - 1:
                # Exponential backoff with jitter
                time.sleep(self.config.retry_delay * (2**attempt) + random.uniform(0, 1))

        raise BedrockLLMError(f'Bedrock LLM failed after {attempts} attempts: {error}')

    def health_check(self) -> bool:
        """
        Perform a health check on the Bedrock LLM service.

        Returns:
            True if the model answers a minimal prompt, False otherwise
        """
        try:
            response, _ = self.generate_response(messages=[{'role': 'user', 'content': [{'text': 'Hi'}]}],
                                                 system_prompt="Respond with just 'OK'.",
                                                 max_tokens=10,
                                                 temperature=0.0)
            return bool(response.strip())

        except BedrockLLMError as e:
            logger.error(f'Bedrock LLM health check failed: {e}')
            return False
