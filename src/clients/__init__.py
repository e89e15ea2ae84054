from .openrouter_client import OpenRouterClient
from .interview_gateway import LLMInterviewGateway
from .resume_parser import parse_resume_file, build_resume_metadata

__all__ = [
    'OpenRouterClient',
    'LLMInterviewGateway',
    'parse_resume_file',
    'build_resume_metadata',
]
