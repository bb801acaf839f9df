from .chat_model_client import ChatModelInferenceClient, response_from_message

__all__ = ["ChatModelInferenceClient", "response_from_message"]
