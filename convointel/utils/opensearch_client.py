"""
OpenSearch client wrapper used as the document store for pipeline records.
"""

from typing import Any, Dict, List, Optional, Tuple

import boto3
from opensearchpy import OpenSearch, RequestsHttpConnection, helpers
from opensearchpy.exceptions import NotFoundError, OpenSearchException
from requests_aws4auth import AWS4Auth

from .config import OpenSearchConfig
from .logging_config import get_logger

logger = get_logger(__name__)

# Fields used in exact-match filters; everything else is mapped dynamically
KEYWORD_FIELDS = ('id', 'account_id', 'name_key', 'person_id', 'transcript_id', 'conversation_id', 'type', 'status')


class OpenSearchError(Exception):
    """Custom exception for OpenSearch errors."""
    pass


class OpenSearchClient:
    """OpenSearch client with AWS authentication and error handling."""

    def __init__(self, config: OpenSearchConfig):
        """
        Initialize OpenSearch client.

        Args:
            config: OpenSearchConfig instance with connection parameters
        """
        self.config = config
        # Serverless collections reject the refresh parameter
        self.refresh = config.service != 'aoss'

        credentials = boto3.Session().get_credentials()
        auth = AWS4Auth(region=config.region, service=config.service, refreshable_credentials=credentials)
        endpoint = config.endpoint
        if '://' in endpoint:
            endpoint = endpoint.split('://', 1)[1]

        self.client = OpenSearch(hosts=[{
            'host': endpoint,
            'port': config.port
        }],
                                 http_auth=auth,
                                 use_ssl=True,
                                 verify_certs=True,
                                 connection_class=RequestsHttpConnection)

        logger.info(f'Initialized OpenSearch client for endpoint: {config.endpoint}')

    def index_name(self, collection: str) -> str:
        return f'{self.config.index_prefix}_{collection}'

    def create_index_if_not_exists(self, collection: str) -> str:
        """
        Create the index backing a collection if it doesn't exist.

        Args:
            collection: Collection name (people, conversations, ...)

        Returns:
            'exists', 'created' or 'failed'
        """
        index_name = self.index_name(collection)

        try:
            if self.client.indices.exists(index=index_name):
                logger.debug(f'Index {index_name} already exists')
                return 'exists'

            properties = {name: {'type': 'keyword'} for name in KEYWORD_FIELDS}
            properties['completed'] = {'type': 'boolean'}
            index_body = {'mappings': {'properties': properties}}

            response = self.client.indices.create(index=index_name, body=index_body)
            logger.info(f'Created index {index_name}')
            return 'created' if response.get('acknowledged', False) else 'failed'

        except OpenSearchException as e:
            logger.error(f'Error creating index {index_name}: {e}')
            raise OpenSearchError(f'Failed to create index: {e}')
        except Exception as e:
            logger.error(f'Unexpected error creating index {index_name}: {e}')
            raise OpenSearchError(f'Unexpected error creating index: {e}')

    def put_document(self, collection: str, doc_id: str, document: Dict[str, Any]) -> bool:
        """
        Create or replace a document under an explicit ID.

        Args:
            collection: Collection name
            doc_id: Document ID
            document: Document body

        Returns:
            True if the document was created or updated
        """
        index_name = self.index_name(collection)
        params = {'refresh': 'true'} if self.refresh else {}

        try:
            response = self.client.index(index=index_name, id=doc_id, body=document, params=params)

            success = response.get('result') in ['created', 'updated']
            if not success:
                logger.warning(f'Unexpected result indexing document {doc_id}: {response}')
            return success

        except OpenSearchException as e:
            logger.error(f'Error indexing document {doc_id}: {e}')
            raise OpenSearchError(f'Failed to index document: {e}')
        except Exception as e:
            logger.error(f'Unexpected error indexing document {doc_id}: {e}')
            raise OpenSearchError(f'Unexpected error indexing document: {e}')

    def bulk_put(self, collection: str, documents: List[Tuple[str, Dict[str, Any]]]) -> int:
        """
        Index many documents in one request.

        Args:
            collection: Collection name
            documents: (doc_id, document) pairs

        Returns:
            Number of documents indexed
        """
        if not documents:
            return 0

        index_name = self.index_name(collection)
        actions = [{'_index': index_name, '_id': doc_id, '_source': document} for doc_id, document in documents]

        try:
            success_count, errors = helpers.bulk(self.client, actions, refresh=self.refresh, raise_on_error=False)
            if errors:
                logger.warning(f'Bulk index into {index_name} had {len(errors)} errors')
            return success_count

        except OpenSearchException as e:
            logger.error(f'Error bulk indexing into {index_name}: {e}')
            raise OpenSearchError(f'Bulk index failed: {e}')
        except Exception as e:
            logger.error(f'Unexpected error bulk indexing into {index_name}: {e}')
            raise OpenSearchError(f'Unexpected error in bulk index: {e}')

    def get_document(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        """
        Get a document by ID.

        Returns:
            Document source if found, None otherwise
        """
        index_name = self.index_name(collection)

        try:
            response = self.client.get(index=index_name, id=doc_id)
            return response.get('_source') if response.get('found') else None

        except NotFoundError:
            return None
        except OpenSearchException as e:
            logger.error(f'Error getting document {doc_id}: {e}')
            raise OpenSearchError(f'Failed to get document: {e}')
        except Exception as e:
            logger.error(f'Unexpected error getting document {doc_id}: {e}')
            raise OpenSearchError(f'Unexpected error getting document: {e}')

    def search_documents(self, collection: str, filters: Dict[str, Any], size: int = 1000) -> List[Dict[str, Any]]:
        """
        Find documents whose fields exactly match all filters.

        Args:
            collection: Collection name
            filters: Field -> value exact-match filters
            size: Maximum number of documents to return

        Returns:
            List of document sources
        """
        index_name = self.index_name(collection)
        search_body = {'size': size, 'query': {'bool': {'filter': [{'term': {field: value}} for field, value in filters.items()]}}}

        try:
            response = self.client.search(index=index_name, body=search_body)
            results = [hit['_source'] for hit in response['hits']['hits']]
            logger.debug(f'Search on {index_name} returned {len(results)} documents')
            return results

        except NotFoundError:
            return []
        except OpenSearchException as e:
            logger.error(f'Error searching {index_name}: {e}')
            raise OpenSearchError(f'Search failed: {e}')
        except Exception as e:
            logger.error(f'Unexpected error searching {index_name}: {e}')
            raise OpenSearchError(f'Unexpected error in search: {e}')

    def health_check(self) -> bool:
        """
        Perform a health check on the OpenSearch service.

        Returns:
            True if service is healthy, False otherwise
        """
        try:
            response = self.client.indices.exists(index=self.index_name('people'))
            return response in [True, False]

        except Exception as e:
            logger.error(f'OpenSearch health check failed: {e}')
            return False
