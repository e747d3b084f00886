import argparse
import os
import socket
import subprocess
import sys
import uvicorn
from authlink.core.security import create_access_token

def get_lan_ip():
    try:
        # Connect to a public DNS server to determine the route
        s = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        s.connect(("8.8.8.8", 80))
        ip = s.getsockname()[0]
        s.close()
        return ip
    except OSError:
        return "127.0.0.1"

def generate_self_signed_cert(cert_file="cert.pem", key_file="key.pem"):
    if os.path.exists(cert_file) and os.path.exists(key_file):
        print("Using existing SSL certificates.")
        return

    print("Generating self-signed SSL certificates for HTTPS...")
    try:
        subprocess.check_call([
            "openssl", "req", "-x509", "-newkey", "rsa:4096", "-keyout", key_file,
            "-out", cert_file, "-days", "365", "-nodes",
            "-subj", "/CN=localhost"
        ])
        print("Certificates generated.")
    except FileNotFoundError:
        print("OpenSSL not found, generating with the 'cryptography' package instead.")
        generate_cert_python(cert_file, key_file)
    except subprocess.CalledProcessError as e:
        print(f"Failed to generate certs: {e}")
        sys.exit(1)

def generate_cert_python(cert_file, key_file):
    try:
        from cryptography import x509
        from cryptography.x509.oid import NameOID
        from cryptography.hazmat.primitives import hashes
        from cryptography.hazmat.primitives.asymmetric import rsa
        from cryptography.hazmat.primitives import serialization
        import datetime
    except ImportError:
        print("'cryptography' library not found and 'openssl' missing. Install it with: pip install cryptography")
        sys.exit(1)

    now = datetime.datetime.now(datetime.timezone.utc)
    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    subject = issuer = x509.Name([
        x509.NameAttribute(NameOID.COMMON_NAME, "localhost"),
    ])
    cert = x509.CertificateBuilder().subject_name(subject).issuer_name(issuer).public_key(
        key.public_key()
    ).serial_number(
        x509.random_serial_number()
    ).not_valid_before(
        now
    ).not_valid_after(
        now + datetime.timedelta(days=365)
    ).add_extension(
        x509.SubjectAlternativeName([x509.DNSName("localhost")]),
        critical=False,
    ).sign(key, hashes.SHA256())

    with open(key_file, "wb") as f:
        f.write(key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.TraditionalOpenSSL,
            encryption_algorithm=serialization.NoEncryption(),
        ))
    with open(cert_file, "wb") as f:
        f.write(cert.public_bytes(serialization.Encoding.PEM))

    print("Certificates generated using Python cryptography.")

def main():
    parser = argparse.ArgumentParser(description="Run the pairing-code service")
    parser.add_argument("--port", type=int, default=8000)
    parser.add_argument("--https", action="store_true", help="serve over HTTPS with a self-signed certificate")
    parser.add_argument("--reload", action="store_true")
    parser.add_argument("--mint-token", metavar="SUB", help="print a dev bearer token for SUB and exit")
    args = parser.parse_args()

    if args.mint_token:
        # Dev helper: a bearer token for exercising POST /auth/claim locally
        print(create_access_token(args.mint_token))
        return

    ssl_kwargs = {}
    scheme = "http"
    if args.https:
        cert_file = "cert.pem"
        key_file = "key.pem"
        generate_self_signed_cert(cert_file, key_file)
        ssl_kwargs = {"ssl_keyfile": key_file, "ssl_certfile": cert_file}
        scheme = "https"

    print("\n" + "="*60)
    print("SERVER STARTING")
    print(f"LAN URL:  {scheme}://{get_lan_ip()}:{args.port}")
    print(f"Local:    {scheme}://127.0.0.1:{args.port}")
    if args.https:
        print("-" * 60)
        print("NOTE: browsers will warn because the certificate is self-signed.")
    print("="*60 + "\n")

    uvicorn.run(
        "authlink.main:app",
        host="0.0.0.0",
        port=args.port,
        reload=args.reload,
        **ssl_kwargs,
    )

if __name__ == "__main__":
    main()
