"""
localchat - Local Chat Gateway

A local chat backend that talks to interchangeable language-model
servers (Ollama, LM Studio / OpenAI-compatible, Anthropic) through one
normalized streaming protocol, and dispatches tool calls the model
embeds in its replies.
"""

__version__ = "1.0.0"
__author__ = "localchat"
