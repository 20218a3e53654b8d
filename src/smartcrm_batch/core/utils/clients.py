# -*- coding: utf-8 -*-

import os
import logging

import openai

AZURE_API_VERSION = "2025-03-01-preview"


def create_openai_client(api_key=None):
    """
    Create an OpenAI client for Batch API calls.

    Args:
        api_key (str): The OpenAI API key. Defaults to OPENAI_API_KEY.
    """
    api_key = api_key or os.getenv('OPENAI_API_KEY')
    if not api_key:
        raise ValueError("No OpenAI API key provided or found in environment.")

    client = openai.OpenAI(api_key=api_key)
    logging.info("OpenAI client created successfully.")
    return client


def create_azure_openai_client(api_key=None, endpoint=None, api_version=None):
    """
    Create an Azure OpenAI client for Batch API calls.

    Args:
        api_key (str): Defaults to AZURE_OPENAI_API_KEY.
        endpoint (str): Defaults to AZURE_OPENAI_ENDPOINT.
        api_version (str): Defaults to AZURE_OPENAI_API_VERSION, then to
            the version the batch endpoints were tested against.
    """
    api_key = api_key or os.getenv('AZURE_OPENAI_API_KEY')
    if not api_key:
        raise ValueError("No Azure OpenAI API key provided or found in environment.")

    endpoint = endpoint or os.getenv('AZURE_OPENAI_ENDPOINT')
    if not endpoint:
        raise ValueError("No Azure OpenAI endpoint provided or found in environment.")

    client = openai.AzureOpenAI(
        api_key=api_key,
        api_version=api_version or os.getenv('AZURE_OPENAI_API_VERSION', AZURE_API_VERSION),
        azure_endpoint=endpoint,
    )
    logging.info("Azure OpenAI client created successfully.")
    return client


def create_client(azure=False):
    """
    Create the client selected by `azure` from environment credentials.

    Raises:
        ValueError: If required credentials are missing.
    """
    if azure:
        return create_azure_openai_client()
    return create_openai_client()
