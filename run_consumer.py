#!/usr/bin/env python
"""
Script to run the RabbitMQ push consumer
"""
from delivery_service.consumers.push_consumer import start_consumer

if __name__ == "__main__":
    start_consumer()
