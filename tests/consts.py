TEST_PREFIX = "orders"
TEST_NAMESPACE = "orders"
TEST_WORKLOAD = "worker"
TEST_REGION = "us-east-1"
TEST_QUEUE_URL = "https://sqs.us-east-1.amazonaws.com/123456789012/orders"
TEST_FUNCTION_NAME = "orders-webhook"
