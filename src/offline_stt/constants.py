"""Core constants for the offline STT pipeline.

Whisper-style models consume 30 seconds of 16kHz mono audio as an 80-channel
log-mel spectrogram (10ms hop, 25ms window) and emit at most 224 tokens.
"""

# Audio format requirements
SAMPLE_RATE: int = 16000  # Hz - required by the model front end
BYTES_PER_SAMPLE: int = 2  # 16-bit PCM
CHUNK_SECONDS: int = 30

# Fixed audio window: 30s at 16kHz
N_SAMPLES: int = 480000  # 16000 * 30

# Spectral analysis
N_FFT: int = 400  # 25ms window
HOP_LENGTH: int = 160  # 10ms hop
N_MEL: int = 80
N_FRAMES: int = 3000  # 480000 // 160

# Decoder output capacity (int32 tokens)
MAX_DECODER_TOKENS: int = 224
TOKEN_BYTES: int = 4

# Vocabulary / filter-bank file
VOCAB_MAGIC: int = 0x5553454E  # "USEN"
N_VOCAB_ENGLISH: int = 51864
N_VOCAB_MULTILINGUAL: int = 51865
