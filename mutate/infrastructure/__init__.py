"""Infrastructure layer exports."""

from .billing import BillingTracker, NoOpBillingTracker, RecordingBillingTracker
from .configurations import ConfigStore, InMemoryConfigStore, YamlConfigStore, load_configuration_file
from .jobs import InMemoryJobStore, JobStore
from .queue import InMemoryQueueBroker, QueueBroker, QueueMessage, attempts_for_file_size
from .storage import BlobStore, InMemoryBlobStore, LocalBlobStore
from .webhooks import DeliveryStore, InMemoryDeliveryStore, InMemoryWebhookStore, WebhookStore

__all__ = [
    "BillingTracker",
    "BlobStore",
    "ConfigStore",
    "DeliveryStore",
    "InMemoryBlobStore",
    "InMemoryConfigStore",
    "InMemoryDeliveryStore",
    "InMemoryJobStore",
    "InMemoryQueueBroker",
    "InMemoryWebhookStore",
    "JobStore",
    "LocalBlobStore",
    "NoOpBillingTracker",
    "QueueBroker",
    "QueueMessage",
    "RecordingBillingTracker",
    "WebhookStore",
    "YamlConfigStore",
    "attempts_for_file_size",
    "load_configuration_file",
]
