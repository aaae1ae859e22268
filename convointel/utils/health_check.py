"""
Health check utilities for the application.
"""

from typing import Any, Dict

from .bedrock_llm import BedrockLLM
from .config import config
from .logging_config import get_logger
from .opensearch_client import OpenSearchClient
from .transcribe_client import TranscribeClient

logger = get_logger(__name__)


def check_health() -> bool:
    """Check the health of all system components.

    Returns:
        True if all components are healthy, False otherwise
    """
    try:
        health_status = get_health_status()

        # Check if all components are healthy
        all_healthy = all(status.get('healthy', False) for status in health_status.values())

        if all_healthy:
            logger.info('All system components are healthy')
        else:
            unhealthy = [name for name, status in health_status.items() if not status.get('healthy', False)]
            logger.warning(f'Unhealthy components: {", ".join(unhealthy)}')

        return all_healthy

    except Exception as e:
        logger.error(f'Health check failed: {e}')
        return False


def get_health_status() -> Dict[str, Any]:
    """Get detailed health status of all components.

    The OpenSearch check is skipped when records are kept in memory.

    Returns:
        Dictionary with health status of each component
    """
    health_status = {}

    # Check Bedrock LLM
    try:
        llm = BedrockLLM(config.bedrock_llm)
        health_status['bedrock_llm'] = {'healthy': llm.health_check(), 'service': 'Amazon Bedrock LLM', 'model': config.bedrock_llm.model_id}
    except Exception as e:
        health_status['bedrock_llm'] = {'healthy': False, 'service': 'Amazon Bedrock LLM', 'error': str(e)}

    # Check Transcribe
    try:
        transcribe = TranscribeClient(config.transcribe)
        health_status['transcribe'] = {'healthy': transcribe.health_check(), 'service': 'Amazon Transcribe', 'bucket': config.transcribe.bucket}
    except Exception as e:
        health_status['transcribe'] = {'healthy': False, 'service': 'Amazon Transcribe', 'error': str(e)}

    # Check OpenSearch
    if config.pipeline.record_store == 'opensearch':
        try:
            opensearch = OpenSearchClient(config.opensearch)
            health_status['opensearch'] = {
                'healthy': opensearch.health_check(),
                'service': 'Amazon OpenSearch',
                'endpoint': config.opensearch.endpoint
            }
        except Exception as e:
            health_status['opensearch'] = {'healthy': False, 'service': 'Amazon OpenSearch', 'error': str(e)}

    return health_status


def get_system_info() -> Dict[str, Any]:
    """Get system information and configuration.

    Returns:
        Dictionary with system information
    """
    return {
        'service_name': 'ConvoIntel',
        'version': '1.0.0',
        'configuration': {
            'bedrock_llm_model': config.bedrock_llm.model_id,
            'transcribe_language': config.transcribe.language_code,
            'record_store': config.pipeline.record_store,
            'max_upload_bytes': config.pipeline.max_upload_bytes,
            'aws_region': config.bedrock_llm.region
        },
        'health_status': get_health_status()
    }
