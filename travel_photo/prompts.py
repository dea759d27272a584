"""
Landmark prompts for travel photo generation.
"""

FACE_PREAMBLE = "Use the image of person in this photo to keep the face as it."

LOCATION_PROMPTS = {
    "france": f"{FACE_PREAMBLE} Place this person in front of the Eiffel Tower in Paris, France. The person should be standing naturally in front of this iconic landmark with the Parisian architecture visible in the background.",
    "usa": f"{FACE_PREAMBLE} Place this person in front of the Statue of Liberty in New York Harbor, USA. The person should be standing with the iconic statue visible in the background and the New York skyline.",
    "uk": f"{FACE_PREAMBLE} Place this person in front of Big Ben and the Houses of Parliament in London, UK. The person should be standing with this iconic London landmark visible in the background.",
    "italy": f"{FACE_PREAMBLE} Place this person in front of the Colosseum in Rome, Italy. The person should be standing with the ancient Roman amphitheater visible in the background.",
    "japan": f"{FACE_PREAMBLE} Place this person in front of the Tokyo Skyline with the Tokyo Tower visible in the background. The person should be standing in a modern urban setting with the iconic Tokyo cityscape.",
    "india": f"{FACE_PREAMBLE} Place this person in front of the Taj Mahal in Agra, India. The person should be standing with this beautiful white marble mausoleum visible in the background.",
    "australia": f"{FACE_PREAMBLE} Place this person in front of the Sydney Opera House in Sydney, Australia. The person should be standing with the iconic white sail-like architecture visible in the background and the Sydney Harbour Bridge.",
    "brazil": f"{FACE_PREAMBLE} Place this person in front of the Christ the Redeemer statue in Rio de Janeiro, Brazil. The person should be standing with the iconic statue visible in the background and the city of Rio below.",
    "dubai": f"{FACE_PREAMBLE} Place this person in front of the Burj Khalifa in Dubai, UAE. The person should be standing with the world's tallest building visible in the background and the modern Dubai skyline.",
}

SUPPORTED_LOCATIONS = tuple(LOCATION_PROMPTS)

PERSON_CHECK_PROMPT = (
    "Please analyze this image and tell me if it contains a person. "
    "Respond with only 'YES' if there is a person in the image, or 'NO' if there is no person in the image."
)


def is_supported_location(location: str) -> bool:
    return location in LOCATION_PROMPTS


def get_location_prompt(location: str) -> str:
    return LOCATION_PROMPTS[location]


def get_fallback_prompt(location: str) -> str:
    """Softer prompt used when the landmark prompt gets no image back."""
    location_name = location[:1].upper() + location[1:]
    return (
        f"Use the image person in this photo to keep the face as it. "
        f"Create a photograph of the person in this image as if they were visiting {location_name}. "
        f"The photograph should show the person in a natural pose at a famous landmark or location in {location_name}. "
        f"Ensure the final image is a clear photograph that looks authentic and realistic."
    )
